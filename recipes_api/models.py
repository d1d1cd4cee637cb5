from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

ID_FIELD = "_id"


@dataclass
class Recipe:
    """Domain object representing a stored recipe.

    Recipes are schema-less: ``fields`` holds whatever the client supplied,
    plus any defaults the store filled in.
    """

    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {ID_FIELD: self.id, **self.fields}


def strip_identifier(payload: Any) -> Dict[str, Any]:
    """Return a copy of a request body without an identifier key.

    Raises :class:`TypeError` when the body is not a JSON object.
    """

    if not isinstance(payload, Mapping):
        raise TypeError(f"Recipe documents must be JSON objects, got {type(payload).__name__}.")
    return {key: value for key, value in payload.items() if key != ID_FIELD}


__all__ = ["ID_FIELD", "Recipe", "strip_identifier"]

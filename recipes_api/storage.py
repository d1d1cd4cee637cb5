from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Protocol

from .models import Recipe


class RecipeRepository(Protocol):
    """Protocol describing the behaviour required by the web layer.

    Lookups by identifier return ``None`` when no document matches. Any
    other failure is raised and reported to clients as a server error.
    """

    def list_recipes(self) -> Iterable[Recipe]:
        """Return every stored recipe in store order."""

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """Return a single recipe or ``None`` if missing."""

    def add_recipe(self, fields: Mapping[str, Any]) -> Recipe:
        """Persist a new recipe and return the stored instance."""

    def update_recipe(self, recipe_id: str, fields: Mapping[str, Any]) -> Optional[Recipe]:
        """Replace the given fields and return the new representation."""

    def delete_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """Remove a recipe and return it as it was before deletion."""


__all__ = ["RecipeRepository"]

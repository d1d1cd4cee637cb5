from __future__ import annotations

import os
import threading
from typing import Any, Dict, Iterable, Mapping, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.field_path import FieldPath

from .models import Recipe, strip_identifier
from .storage import RecipeRepository

CREATED_FIELD = "created"


class FirestoreRecipeStorage(RecipeRepository):
    """Recipe storage backed by a single Firestore collection.

    The Firestore client is created on first use so that building the
    storage never requires credentials or network access.
    """

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        database: Optional[str] = None,
        collection_name: str = "recipes",
        client: Optional[firestore.Client] = None,
    ) -> None:
        self._project = project
        self._database = database
        self._collection_name = collection_name
        self._firestore_client = client
        self._client_lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "FirestoreRecipeStorage":
        """Build a storage instance from environment variables."""

        project = os.environ.get("GCP_PROJECT")
        database = os.environ.get("FIRESTORE_DATABASE")
        collection_name = os.environ.get("RECIPES_COLLECTION", "recipes")
        return cls(project=project, database=database, collection_name=collection_name)

    @property
    def _collection(self) -> firestore.CollectionReference:
        with self._client_lock:
            if self._firestore_client is None:
                kwargs: Dict[str, Any] = {"project": self._project}
                if self._database:
                    kwargs["database"] = self._database
                self._firestore_client = firestore.Client(**kwargs)
        return self._firestore_client.collection(self._collection_name)

    def check_connection(self) -> str:
        """Issue one cheap read and return the collection id."""

        collection = self._collection
        collection.limit(1).get()
        return collection.id

    def list_recipes(self) -> Iterable[Recipe]:
        for snapshot in self._collection.stream():
            yield self._snapshot_to_recipe(snapshot)

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        snapshot = self._collection.document(recipe_id).get()
        if not snapshot.exists:
            return None
        return self._snapshot_to_recipe(snapshot)

    def add_recipe(self, fields: Mapping[str, Any]) -> Recipe:
        doc = strip_identifier(fields)
        doc.setdefault(CREATED_FIELD, firestore.SERVER_TIMESTAMP)

        doc_ref = self._collection.document()
        doc_ref.set(doc)

        # Re-read so server timestamps come back resolved.
        return self._snapshot_to_recipe(doc_ref.get())

    def update_recipe(self, recipe_id: str, fields: Mapping[str, Any]) -> Optional[Recipe]:
        changes = strip_identifier(fields)
        doc_ref = self._collection.document(recipe_id)

        if changes:
            # Quote every key so it is treated as one top-level field name.
            field_updates = {
                FieldPath(key).to_api_repr(): value for key, value in changes.items()
            }
            try:
                doc_ref.update(field_updates)
            except gcloud_exceptions.NotFound:
                return None

        snapshot = doc_ref.get()
        if not snapshot.exists:
            return None
        return self._snapshot_to_recipe(snapshot)

    def delete_recipe(self, recipe_id: str) -> Optional[Recipe]:
        doc_ref = self._collection.document(recipe_id)
        snapshot = doc_ref.get()

        if not snapshot.exists:
            return None

        doc_ref.delete()
        return self._snapshot_to_recipe(snapshot)

    @staticmethod
    def _snapshot_to_recipe(snapshot: firestore.DocumentSnapshot) -> Recipe:
        return Recipe(id=snapshot.id, fields=snapshot.to_dict() or {})


__all__ = ["FirestoreRecipeStorage"]

import logging
import threading
import time
from datetime import datetime
from typing import Any, Optional

from flask import Flask, g, jsonify, request
from flask.json.provider import DefaultJSONProvider
from werkzeug.exceptions import HTTPException

from .gcp_storage import FirestoreRecipeStorage
from .models import Recipe
from .storage import RecipeRepository

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(f"{__name__}.access")

NOT_FOUND_MESSAGE = "Recipe not found"
SERVER_ERROR_MESSAGE = "Internal Server Error"


class RecipeJSONProvider(DefaultJSONProvider):
    """JSON provider that renders timestamps as ISO 8601 and keeps key order."""

    sort_keys = False

    @staticmethod
    def default(o: Any) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def create_app(storage: Optional[RecipeRepository] = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    storage:
        Optional recipe repository. When ``None`` the application will use
        :class:`FirestoreRecipeStorage` configured through environment
        variables and check the connection in the background.
    """

    app = Flask(__name__, static_folder="public", static_url_path="/public")
    app.json = RecipeJSONProvider(app)

    if storage is None:
        storage = FirestoreRecipeStorage.from_env()
        _check_connection_in_background(storage)
    app.config["RECIPE_STORAGE"] = storage

    @app.before_request
    def start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.get("request_started", time.perf_counter())
        duration_ms = (time.perf_counter() - started) * 1000
        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        access_logger.log(level, "%s %s %d %.1fms", request.method, request.path, status, duration_ms)
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        # Keep Werkzeug's status and headers (Allow on 405), swap in a JSON body.
        response = exc.get_response()
        response.data = app.json.dumps({"message": exc.name})
        response.content_type = "application/json"
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        logger.exception("Unhandled error while serving %s %s", request.method, request.path)
        return _server_error()

    @app.get("/")
    def index() -> str:
        return "<h1>Recipes API</h1>"

    @app.post("/recipes")
    def create_recipe():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        try:
            recipe = storage_backend.add_recipe(_json_body())
        except Exception:
            logger.exception("Error creating recipe")
            return _server_error()
        return jsonify(recipe.to_dict()), 201

    @app.get("/recipes")
    def list_recipes():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        try:
            recipes = [recipe.to_dict() for recipe in storage_backend.list_recipes()]
        except Exception:
            logger.exception("Error fetching recipes")
            return _server_error()
        return jsonify(recipes), 200

    @app.get("/recipes/<recipe_id>")
    def get_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        try:
            recipe = storage_backend.get_recipe(recipe_id)
        except Exception:
            logger.exception("Error fetching recipe %s", recipe_id)
            return _server_error()
        return _found_or_404(recipe, 200)

    @app.put("/recipes/<recipe_id>")
    def update_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        try:
            recipe = storage_backend.update_recipe(recipe_id, _json_body())
        except Exception:
            logger.exception("Error updating recipe %s", recipe_id)
            return _server_error()
        return _found_or_404(recipe, 200)

    @app.delete("/recipes/<recipe_id>")
    def delete_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        try:
            recipe = storage_backend.delete_recipe(recipe_id)
        except Exception:
            logger.exception("Error deleting recipe %s", recipe_id)
            return _server_error()
        if recipe is None:
            return _not_found()
        return "", 204

    return app


def _json_body() -> Any:
    # An empty body is an empty recipe; anything else must parse as JSON.
    if not request.get_data():
        return {}
    return request.get_json(force=True)


def _found_or_404(recipe: Optional[Recipe], status: int):
    if recipe is None:
        return _not_found()
    return jsonify(recipe.to_dict()), status


def _not_found():
    return jsonify(message=NOT_FOUND_MESSAGE), 404


def _server_error():
    return jsonify(message=SERVER_ERROR_MESSAGE), 500


def _check_connection_in_background(storage: FirestoreRecipeStorage) -> threading.Thread:
    def check() -> None:
        try:
            collection = storage.check_connection()
        except Exception:
            logger.exception("Error connecting to Firestore")
        else:
            logger.info('Connected to Firestore! Collection: "%s"', collection)

    thread = threading.Thread(target=check, name="firestore-connect", daemon=True)
    thread.start()
    return thread


__all__ = ["create_app", "Recipe", "RecipeJSONProvider"]

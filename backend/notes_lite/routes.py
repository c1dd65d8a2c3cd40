"""
REST API routes for the notes service.

Every mutation responds with the user's complete store so clients can replace
their local state wholesale:
- GET    /users/<user_id>/store
- POST   /users/<user_id>/notes
- PATCH  /users/<user_id>/notes/<note_id>
- DELETE /users/<user_id>/notes/<note_id>
- PUT    /users/<user_id>/orders/<bucket>

Errors are rendered as {"message": str, "details"?: any}.
"""

import logging
from typing import Any

from flask import Blueprint, Flask, jsonify, request
from werkzeug.exceptions import HTTPException, NotFound

from .errors import BadRequestError, HttpError
from .services.container import get_services
from .services.note_service import normalize_id

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _json_error(message: str, status: int = 400, details: Any = None):
    payload = {"message": message}
    if details is not None:
        payload["details"] = details
    return jsonify(payload), status


def _json_body() -> Any:
    """Parsed JSON body; an empty body counts as an empty object."""
    if not request.get_data(cache=True):
        return {}
    payload = request.get_json(force=True, silent=True)
    if payload is None:
        raise BadRequestError("Request body must be valid JSON")
    return payload


def _store_response(user_id: str, status: int = 200):
    store = get_services().notes.get_user_store(user_id)
    return jsonify(store.to_payload()), status


# ============================================================================
# STORE ENDPOINTS
# ============================================================================


@bp.get("/users/<user_id>/store")
def get_store(user_id: str):
    """
    Return the user's complete store (created on first touch).

    Returns:
        JSON: {"notes": {...}, "pinnedOrder": [...], "unpinnedOrder": [...], "archivedOrder": [...]}
    """
    user_id = normalize_id(user_id, "User")
    return _store_response(user_id)


# ============================================================================
# NOTES ENDPOINTS
# ============================================================================


@bp.post("/users/<user_id>/notes")
def create_note(user_id: str):
    """
    Create a note. Every field is optional.

    Body JSON:
      { title?: str, body?: str, color?: "#rrggbb", pinned?: bool, archived?: bool }
    """
    user_id = normalize_id(user_id, "User")
    get_services().notes.create_note(user_id, _json_body())
    return _store_response(user_id, 201)


@bp.patch("/users/<user_id>/notes/<note_id>")
def update_note(user_id: str, note_id: str):
    """Apply a partial update; at least one field is required."""
    user_id = normalize_id(user_id, "User")
    note_id = normalize_id(note_id, "Note")
    get_services().notes.update_note(user_id, note_id, _json_body())
    return _store_response(user_id)


@bp.delete("/users/<user_id>/notes/<note_id>")
def delete_note(user_id: str, note_id: str):
    user_id = normalize_id(user_id, "User")
    note_id = normalize_id(note_id, "Note")
    get_services().notes.delete_note(user_id, note_id)
    return _store_response(user_id)


# ============================================================================
# ORDER ENDPOINTS
# ============================================================================


@bp.put("/users/<user_id>/orders/<bucket>")
def reorder_bucket(user_id: str, bucket: str):
    """
    Rewrite the display order of one bucket.

    Body JSON:
      { order: [note_id, ...] }  - exactly the bucket's current members
    """
    user_id = normalize_id(user_id, "User")
    bucket = bucket.strip()
    if not bucket:
        raise BadRequestError("Bucket is required")
    get_services().notes.reorder_bucket(user_id, bucket, _json_body())
    return _store_response(user_id)


# ============================================================================
# ERROR HANDLERS
# ============================================================================


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HttpError)
    def handle_http_error(error: HttpError):
        return _json_error(error.message, error.status, error.details)

    @app.errorhandler(NotFound)
    def handle_not_found(error: NotFound):
        return _json_error("Not found", 404)

    @app.errorhandler(HTTPException)
    def handle_werkzeug_error(error: HTTPException):
        return _json_error(error.description or error.name, error.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        logger.exception("Unexpected error")
        return _json_error("Internal server error", 500)

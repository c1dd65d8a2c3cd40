"""
HTTP client for the notes API.

Every call returns the user's complete store as parsed by ``UserStore``.
Non-2xx responses raise ``NotesApiError``; network failures and timeouts
raise ``TransportError`` so callers can tell them apart from server answers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ..config import Config
from ..services.models import UserStore

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class NotesApiError(Exception):
    """A request that reached the server and came back unsuccessful."""

    def __init__(self, message: str, status: int, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def retryable(self) -> bool:
        return self.status >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class TransportError(NotesApiError):
    """The request never produced an HTTP response (connection error, timeout)."""

    def __init__(self, message: str = GENERIC_ERROR_MESSAGE):
        super().__init__(message, status=0)

    @property
    def retryable(self) -> bool:
        return True


def _encode(value: str) -> str:
    return quote(value, safe="")


class NotesApiClient:
    """
    Thin wrapper over ``requests`` for the /api/users/... endpoints.

    ``session`` can be any object with a ``requests.Session``-compatible
    ``request`` method, which is how tests route calls to a Flask test client.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url if base_url is not None else Config.API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else Config.API_TIMEOUT

    def get_store(self, user_id: str) -> UserStore:
        return self._request("GET", f"/api/users/{_encode(user_id)}/store")

    def create_note(self, user_id: str, payload: Optional[Dict[str, Any]] = None) -> UserStore:
        return self._request("POST", f"/api/users/{_encode(user_id)}/notes", payload or {})

    def update_note(self, user_id: str, note_id: str, payload: Dict[str, Any]) -> UserStore:
        return self._request(
            "PATCH", f"/api/users/{_encode(user_id)}/notes/{_encode(note_id)}", payload or {}
        )

    def delete_note(self, user_id: str, note_id: str) -> UserStore:
        return self._request("DELETE", f"/api/users/{_encode(user_id)}/notes/{_encode(note_id)}")

    def reorder_bucket(self, user_id: str, bucket: str, order: List[str]) -> UserStore:
        return self._request(
            "PUT", f"/api/users/{_encode(user_id)}/orders/{_encode(bucket)}", {"order": list(order)}
        )

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> UserStore:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError() from e

        data = self._parse_json(response)
        if not 200 <= response.status_code < 300:
            message = None
            if isinstance(data, dict):
                message = data.get("message")
            raise NotesApiError(
                message or f"Request failed with status {response.status_code}",
                response.status_code,
                data if isinstance(data, dict) else None,
            )

        if data is None:
            raise NotesApiError("Received empty response body", response.status_code)
        try:
            return UserStore.model_validate(data)
        except ValidationError as e:
            logger.warning("%s %s returned a malformed store: %s", method, path, e)
            raise NotesApiError("Received malformed response body", response.status_code) from e

    @staticmethod
    def _parse_json(response: Any) -> Any:
        text = response.text
        if not text:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning("Failed to parse response JSON: %s", e)
            return None

"""
Error taxonomy shared by the note service and the HTTP layer.

Every error carries the status code it is rendered with, so routes never
need to translate service failures by hand.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import ValidationError


class HttpError(Exception):
    status: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class BadRequestError(HttpError):
    status = 400


class NotFoundError(HttpError):
    status = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, details)


def validation_failed(exc: ValidationError) -> BadRequestError:
    """Wrap a pydantic ValidationError as a 400 with JSON-safe issue details."""
    issues = json.loads(exc.json(include_url=False))
    return BadRequestError("Validation failed", details=issues)

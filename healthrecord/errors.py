"""Domain exceptions raised by the service layer.

Each exception carries the HTTP status the API layer renders it with, so the
services never import FastAPI.  Ownership failures are reported as
:class:`NotFoundError` exactly like missing rows; callers cannot tell a record
owned by somebody else from one that does not exist.
"""

from __future__ import annotations

from typing import Any, Optional


class HealthRecordError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(HealthRecordError):
    status_code = 404


class ConflictError(HealthRecordError):
    status_code = 409


class UnauthorizedError(HealthRecordError):
    status_code = 401


class BadRequestError(HealthRecordError):
    """Invalid input or a state transition the record does not allow."""

    status_code = 400


class AIGenerationError(HealthRecordError):
    """The external text generation call failed."""

    status_code = 502


class AIResponseParseError(AIGenerationError):
    """The model replied but the reply was not a JSON array of strings."""


__all__ = [
    "HealthRecordError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
    "BadRequestError",
    "AIGenerationError",
    "AIResponseParseError",
]

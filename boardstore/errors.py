"""Boardstore error types.

Error codes are stable strings for programmatic handling and map 1:1 onto
the HTTP error payload rendered by the API.

Propagation:
- ValidationError / ConstraintViolation / NotFoundError / AuthError are
  always surfaced to the caller.
- NetworkError is raised by remote backends and absorbed by the
  PersistenceGateway, which falls back to the local mirror.
- NeedsRebalance is an internal ordering signal and never leaves the store.
"""

from __future__ import annotations

from typing import Any

class BoardstoreError(Exception):
    """Base error for all Boardstore exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render as API error payload."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }

class ValidationError(BoardstoreError):
    """Empty/invalid name or argument (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400

class ConstraintViolation(BoardstoreError):
    """Command would break an ordering or archive invariant (409)."""

    code = "constraint_violation"
    message = "Constraint violation"
    status_code = 409

class NotFoundError(BoardstoreError):
    """Container not found (404)."""

    code = "not_found"
    message = "Container not found"
    status_code = 404

class AuthError(BoardstoreError):
    """Remote store rejected the session's credentials (401).

    The gateway does not fall back to the mirror on this error.
    """

    code = "unauthorized"
    message = "Credentials rejected"
    status_code = 401

class NetworkError(BoardstoreError):
    """Remote store unreachable or erroring (503).

    Never reaches API callers: the gateway recovers via the mirror.
    """

    code = "network_error"
    message = "Remote store unavailable"
    status_code = 503

class NeedsRebalance(Exception):
    """No usable midpoint left between two sibling positions."""

    def __init__(self, before: float, after: float) -> None:
        self.before = before
        self.after = after
        super().__init__(f"no headroom between {before} and {after}")

"""Typed exceptions for integration account operations."""
from __future__ import annotations

from typing import Optional


class IntegrationError(Exception):
    """Base exception for all integration operations.

    Attributes:
        status: HTTP status code the API layer responds with
        detail: Human-readable error description
    """

    status = 500

    def __init__(self, detail: str, status: Optional[int] = None):
        self.detail = detail
        if status is not None:
            self.status = status
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to the JSON error body returned by the API."""
        return {"ok": False, "error": self.detail}


class ValidationError(IntegrationError):
    """Malformed input (bad nick, bad username, illegal status change)."""
    status = 400


class ConflictError(IntegrationError):
    """Duplicate account for a user+integration, or duplicate registry id."""
    status = 409


class NotFoundError(IntegrationError):
    """Unknown account or integration id."""
    status = 404


class ExternalServiceError(IntegrationError):
    """Backend unreachable or returned a non-success response.

    Attributes:
        service: Backend name (e.g. "atheme", "prosody")
        status_code: Upstream HTTP status code, if any
    """
    status = 502

    def __init__(self, detail: str, service: str = "", status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(detail)


class InternalError(IntegrationError):
    """Anything unanticipated."""
    status = 500


class ConfigurationError(IntegrationError):
    """Adapter configuration is missing or invalid (raised at construction)."""
    status = 500


class UniqueConstraintViolation(Exception):
    """Raised by an account store when a uniqueness constraint is violated.

    Adapters translate this into ConflictError.
    """

    def __init__(self, constraint: str):
        self.constraint = constraint
        super().__init__(f"Unique constraint violated: {constraint}")

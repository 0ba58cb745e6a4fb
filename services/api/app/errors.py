"""Domain errors shared by stores, services and routes.

Each error carries a stable `code` used in the structured error body:
{ "error": { "code": str, "message": str, "detail": object } }
"""

from typing import Any


class ShowcaseError(Exception):
    """Base class for expected, user-facing failures."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(ShowcaseError):
    """Referenced entity does not exist (or is no longer addressable)."""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(ShowcaseError):
    """Actor lacks rights over the mutation."""

    code = "FORBIDDEN"
    status_code = 403


class ValidationError(ShowcaseError):
    """Content length/shape or a relationship rule was violated."""

    code = "VALIDATION_ERROR"
    status_code = 400


class TransientStoreError(ShowcaseError):
    """I/O failure talking to the metrics store. Safe to retry."""

    code = "STORE_UNAVAILABLE"
    status_code = 503

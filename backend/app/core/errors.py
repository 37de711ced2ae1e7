"""Error taxonomy shared by the persistence, REST and GraphQL layers.

Every failure the service reports to a caller is one of the tagged
variants below. Each variant carries its own HTTP status, a stable
machine-readable code and optional per-field details, so the API
boundary can translate it once into either a JSON error body or a
GraphQL error with ``extensions.code``.

Example:
    Raise from a route and let the registered handler render it:
        >>> from app.core import errors
        >>> raise errors.NotFoundError()
        >>> # -> 404 {"error": "Not found", "details": [], "code": "NOT_FOUND"}
"""

from __future__ import annotations

from collections.abc import Sequence


class DisasterAPIError(Exception):
    """Base class for errors that are reported to API callers.

    Attributes:
        status_code: HTTP status used by the REST surface.
        code: Stable error code used by REST bodies and GraphQL extensions.
        message: Top-level human readable message.
        details: Field-level messages, empty when not applicable.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        details: Sequence[str] | None = None,
        *,
        code: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = list(details or [])
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(DisasterAPIError):
    """Malformed, missing or out-of-range input."""

    status_code = 400
    code = "INVALID_INPUT"
    default_message = "Invalid input"


class MalformedIdError(DisasterAPIError):
    """Identifier does not match the store's id format (UUID)."""

    status_code = 400
    code = "INVALID_ID"
    default_message = "Invalid ID format"


class NotFoundError(DisasterAPIError):
    """Well-formed identifier with no matching record."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class StoreError(DisasterAPIError):
    """Connectivity, constraint violation or unexpected backend failure."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Database operation failed"


class BulkWriteError(StoreError):
    """Store failure during a bulk write.

    Reported as 400 with the driver message in ``details`` so callers can
    see why the whole batch was rolled back.
    """

    status_code = 400

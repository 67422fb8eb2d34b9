# Overview: Domain error types shared by the service layer.

"""
Marketplace domain errors.

Every error carries a human-readable message plus a `details` dict
(entity, id, field, expected range, from/to status) that callers can
render without parsing the message.
"""

from __future__ import annotations

from typing import Any


class MarketplaceError(Exception):
    """Base class for domain failures raised by the service layer."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict:
        return {"error": self.message, "type": type(self).__name__, "details": dict(self.details)}


class ValidationError(MarketplaceError, ValueError):
    """400-level input problem."""


class NotFoundError(MarketplaceError, LookupError):
    """Referenced entity does not exist."""


class InvalidStateTransition(MarketplaceError, ValueError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, message: str, *, from_status: str | None = None, to_status: str | None = None, **details: Any):
        super().__init__(message, from_status=from_status, to_status=to_status, **details)
        self.from_status = from_status
        self.to_status = to_status


class ConflictError(MarketplaceError):
    """409-level conflict: stale version or duplicate unique value."""


class IntegrityError(MarketplaceError):
    """Stored data violates a structural invariant (cycle, orphan link)."""

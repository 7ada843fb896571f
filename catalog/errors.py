"""Typed failures raised by the catalog engine.

Every public engine operation either returns a result or raises a subclass of
:class:`CatalogError`. Backend transport problems are wrapped into
:class:`StoreUnavailable` by the storage layer, so callers never need to know
which client library sits underneath.
"""
from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base class for all engine failures."""

    kind = "CatalogError"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class NotFound(CatalogError):
    """Entity, slug or record id is absent."""

    kind = "NotFound"
    status_code = 404


class Conflict(CatalogError):
    """Duplicate original name or slug."""

    kind = "Conflict"
    status_code = 409


class InvalidInput(CatalogError):
    """Missing or malformed caller input (blank slug, page < 1, ...)."""

    kind = "InvalidInput"
    status_code = 400


class PartialPropagationFailure(CatalogError):
    """The registry was updated but the catalog bulk write was not fully confirmed.

    The registry change is already committed at this point; the caller decides
    whether to re-run the propagation.
    """

    kind = "PartialPropagationFailure"
    status_code = 502

    def __init__(self, message: str, attempted: int, confirmed: int, details: dict[str, Any] | None = None) -> None:
        merged = {"attempted": attempted, "confirmed": confirmed}
        merged.update(details or {})
        super().__init__(message, merged)
        self.attempted = attempted
        self.confirmed = confirmed


class StoreUnavailable(CatalogError):
    """The storage backend failed to answer."""

    kind = "StoreUnavailable"
    status_code = 503

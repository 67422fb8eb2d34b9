"""Port registry.

Provides get_*/set_*/reset_* helpers to swap implementations:
- SQL adapters (default) backed by the Flask-SQLAlchemy session
- in-memory fakes for tests
"""

from __future__ import annotations

from ..time_utils import Clock, SystemClock
from .port import (
    IdentityStore,
    ProductCatalog,
    ProductRecord,
    ReviewRecord,
    ReviewStore,
    UserRecord,
    VendorRecord,
    VendorRepository,
)
from .sql_adapter import SqlIdentityStore, SqlProductCatalog, SqlReviewStore, SqlVendorRepository

_catalog: ProductCatalog | None = None
_reviews: ReviewStore | None = None
_identity: IdentityStore | None = None
_vendors: VendorRepository | None = None
_clock: Clock | None = None


def get_catalog() -> ProductCatalog:
    """Return the current product catalog. Defaults to SqlProductCatalog."""
    global _catalog
    if _catalog is None:
        _catalog = SqlProductCatalog()
    return _catalog


def set_catalog(catalog: ProductCatalog) -> None:
    global _catalog
    _catalog = catalog


def get_review_store() -> ReviewStore:
    global _reviews
    if _reviews is None:
        _reviews = SqlReviewStore()
    return _reviews


def set_review_store(store: ReviewStore) -> None:
    global _reviews
    _reviews = store


def get_identity_store() -> IdentityStore:
    global _identity
    if _identity is None:
        _identity = SqlIdentityStore()
    return _identity


def set_identity_store(store: IdentityStore) -> None:
    global _identity
    _identity = store


def get_vendor_repository() -> VendorRepository:
    global _vendors
    if _vendors is None:
        _vendors = SqlVendorRepository()
    return _vendors


def set_vendor_repository(repository: VendorRepository) -> None:
    global _vendors
    _vendors = repository


def get_clock() -> Clock:
    """Return the current clock. Defaults to SystemClock."""
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def set_clock(clock: Clock) -> None:
    """Override the active clock (useful for tests)."""
    global _clock
    _clock = clock


def reset_ports() -> None:
    """Reset every port to its default adapter."""
    global _catalog, _reviews, _identity, _vendors, _clock
    _catalog = None
    _reviews = None
    _identity = None
    _vendors = None
    _clock = None


__all__ = [
    "ProductCatalog", "ReviewStore", "IdentityStore", "VendorRepository",
    "ProductRecord", "ReviewRecord", "UserRecord", "VendorRecord",
    "get_catalog", "set_catalog",
    "get_review_store", "set_review_store",
    "get_identity_store", "set_identity_store",
    "get_vendor_repository", "set_vendor_repository",
    "get_clock", "set_clock",
    "reset_ports",
]

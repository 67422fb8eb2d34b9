"""Read-side ports (abstract interfaces) the domain services depend on.

Services take these as keyword arguments and fall back to the registered
adapter (see ports/__init__.py), so tests can swap in-memory fakes and
production uses the SQL adapters without changing domain code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class ProductRecord:
    id: int
    vendor_id: int
    category_id: int | None
    name: str
    price_cents: int
    status: str = "active"
    is_active: bool = True
    sku: str | None = None
    image_url: str | None = None

    @property
    def is_sellable(self) -> bool:
        """Counted in category totals and accepted at checkout."""
        return self.is_active and self.status == "active"


@dataclass(frozen=True)
class ReviewRecord:
    id: int
    vendor_id: int
    rating: int
    is_approved: bool = True


@dataclass(frozen=True)
class UserRecord:
    id: int
    first_name: str
    last_name: str
    email: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class VendorRecord:
    id: int
    business_name: str
    status: str
    is_active: bool
    commission_rate_bps: int
    return_policy_enabled: bool = True
    return_policy_period_days: int = 30


class ProductCatalog(ABC):
    """Product lookups consumed by categories, checkout and vendor stats."""

    @abstractmethod
    def count_active_products(self, category_ids: Iterable[int]) -> int:
        """Count products that are active (status and flag) in any of the categories."""
        ...

    @abstractmethod
    def count_products_in_categories(self, category_ids: Iterable[int]) -> int:
        """Count products of any status referencing any of the categories."""
        ...

    @abstractmethod
    def list_by_vendor(self, vendor_id: int) -> list[ProductRecord]:
        ...

    @abstractmethod
    def get_products(self, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        ...


class ReviewStore(ABC):
    @abstractmethod
    def reviews_for_vendor(self, vendor_id: int) -> list[ReviewRecord]:
        """Approved reviews for the vendor."""
        ...


class IdentityStore(ABC):
    @abstractmethod
    def get_user(self, user_id: int) -> UserRecord | None:
        ...


class VendorRepository(ABC):
    @abstractmethod
    def get(self, vendor_id: int) -> VendorRecord | None:
        ...

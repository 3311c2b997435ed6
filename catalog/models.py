"""
catalog/models.py -- Domain dataclasses for categories and listings.

Listing is the stored row as the service sees it (owner_id, category_id,
lifecycle). ListingView is what leaves the layer: the same listing with its
owner AccountView and its Category already expanded, read in one joined
SELECT by catalog/store.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from auth.models import AccountView
from core.lifecycle import ACTIVE, Lifecycle


class ListingStatus(str, Enum):
    available = "available"
    sold = "sold"
    hidden = "hidden"


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    slug: str
    description: str = ""
    icon: str = ""
    is_active: bool = True
    created_at: str = ""


@dataclass(frozen=True)
class CategoryStat:
    category: Category
    product_count: int


@dataclass
class Listing:
    """A listing row. price >= 0 and images non-empty are enforced on input."""

    id: int
    owner_id: int
    category_id: int
    title: str
    description: str
    price: float
    images: list[str]
    condition: str
    location: str
    is_negotiable: bool = False
    status: ListingStatus = ListingStatus.available
    view_count: int = 0
    created_at: str = ""
    updated_at: str = ""
    sold_at: Optional[str] = None
    lifecycle: Lifecycle = field(default=ACTIVE)


@dataclass(frozen=True)
class ListingView:
    """Denormalized read view. owner never carries a password field."""

    id: int
    title: str
    description: str
    price: float
    images: tuple[str, ...]
    condition: str
    location: str
    is_negotiable: bool
    status: ListingStatus
    view_count: int
    created_at: str
    updated_at: str
    sold_at: Optional[str]
    owner: AccountView
    category: Category
    lifecycle: Lifecycle = ACTIVE


@dataclass(frozen=True)
class NewListing:
    category_id: int
    title: str
    description: str
    price: float
    images: tuple[str, ...]
    condition: str
    location: str
    is_negotiable: bool = False


# Columns a listing update may touch, in a stable order.
PATCH_FIELDS = (
    "title",
    "description",
    "price",
    "images",
    "condition",
    "location",
    "is_negotiable",
    "category_id",
    "status",
)


@dataclass(frozen=True)
class ListingPatch:
    """Partial listing update. None means "not supplied".

    An empty string is a value, not an absence: "" for location clears it.
    Fields that may not be blank are rejected at the API boundary.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    images: Optional[tuple[str, ...]] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    is_negotiable: Optional[bool] = None
    category_id: Optional[int] = None
    status: Optional[ListingStatus] = None

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in PATCH_FIELDS if getattr(self, name) is not None}


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def compute(cls, page: int, page_size: int, total_count: int) -> Pagination:
        total_pages = math.ceil(total_count / page_size) if total_count else 0
        return cls(
            page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


@dataclass(frozen=True)
class Page:
    items: list[ListingView]
    pagination: Pagination

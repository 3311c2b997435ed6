"""
catalog/query.py -- Listing Query Builder.

Turns loosely-specified, untrusted listing parameters into a deterministic,
bounded QueryPlan that CatalogStore.run_plan() executes.

Two steps, kept apart so each is testable on its own:

  ListingQuery.from_params(...)  raw strings -> normalized, typed query.
                                 Never raises for junk paging/price/sort
                                 input; it falls back to defaults instead.
                                 The only hard failure is an explicit
                                 status value that is not a ListingStatus.

  build_plan(query, scope)       typed query + caller scope -> SQLAlchemy
                                 predicates, ORDER BY, OFFSET, LIMIT.

Injection safety:
  Every user value reaches SQL as a bound parameter. Sort columns come from
  the SORT_FIELDS allow-list -- a user string is only ever used as a dict key,
  never as an identifier. LIKE wildcards in search terms are escaped by
  ColumnOperators.icontains(autoescape=True).

Determinism:
  Every ORDER BY ends with listings.id in the same direction as the primary
  sort, so rows with equal keys always come back in the same order and pages
  never overlap or skip.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import or_

from catalog.models import ListingStatus
from catalog.store import categories, listings
from core.db import MAX_INTEGER
from core.errors import ValidationError

# ---------------------------------------------------------------------------
# Sort allow-list
# ---------------------------------------------------------------------------

# Accepted spellings -> canonical column key.
SORT_FIELDS: dict[str, str] = {
    "price": "price",
    "created_at": "created_at",
    "createdAt": "created_at",
    "view_count": "view_count",
    "viewCount": "view_count",
    "views": "view_count",
    "title": "title",
}

DEFAULT_SORT = "created_at"


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PublicScope:
    """Anyone browsing: available, non-deleted listings only."""


@dataclass(frozen=True)
class OwnerScope:
    """The caller's own listings, any status."""

    owner_id: int


@dataclass(frozen=True)
class AllScope:
    """Admin view: every non-deleted listing, any status."""


Scope = Union[PublicScope, OwnerScope, AllScope]


# ---------------------------------------------------------------------------
# Normalized query
# ---------------------------------------------------------------------------


def _clean(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _positive_int(raw: Optional[str]) -> Optional[int]:
    value = _clean(raw)
    if value is None:
        return None
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number > 0 else None


def _positive_price(raw: Optional[str]) -> Optional[float]:
    """Parse a price bound. Zero, negative, NaN and infinities mean "no bound"."""
    value = _clean(raw)
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


@dataclass(frozen=True)
class ListingQuery:
    search: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    status: Optional[ListingStatus] = None
    sort_field: str = DEFAULT_SORT
    descending: bool = True
    page: int = 1
    page_size: int = 12

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_params(
        cls,
        search: Optional[str] = None,
        category: Optional[str] = None,
        condition: Optional[str] = None,
        min_price: Optional[str] = None,
        max_price: Optional[str] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        page: Optional[str] = None,
        page_size: Optional[str] = None,
        status: Optional[str] = None,
        *,
        default_page_size: int = 12,
        max_page_size: int = 100,
    ) -> ListingQuery:
        """Normalize raw query-string values.

        page:      positive int, else 1. Capped so the OFFSET fits a
                   64-bit integer; a page that far out is simply empty.
        page_size: positive int, else default_page_size; then capped at
                   max_page_size.
        min/max:   applied only when they parse to a finite value > 0.
                   min > max is allowed and simply matches nothing.
        sort:      allow-listed field; unknown -> created_at desc, whatever
                   the order says. order is asc|desc, anything else on a
                   known field -> desc.
        status:    optional; an unknown value raises ValidationError.
        """
        field_key = SORT_FIELDS.get(_clean(sort) or "")
        if field_key is None:
            field_key, descending = DEFAULT_SORT, True
        else:
            descending = (_clean(order) or "").lower() != "asc"

        status_value: Optional[ListingStatus] = None
        raw_status = _clean(status)
        if raw_status is not None:
            try:
                status_value = ListingStatus(raw_status.lower())
            except ValueError as exc:
                raise ValidationError("Invalid status value") from exc

        size = min(_positive_int(page_size) or default_page_size, max_page_size)
        return cls(
            search=_clean(search),
            category=_clean(category),
            condition=_clean(condition),
            min_price=_positive_price(min_price),
            max_price=_positive_price(max_price),
            status=status_value,
            sort_field=field_key,
            descending=descending,
            page=min(_positive_int(page) or 1, MAX_INTEGER // size),
            page_size=size,
        )


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueryPlan:
    where: tuple
    order_by: tuple
    offset: int
    limit: int
    page: int
    page_size: int


def build_plan(query: ListingQuery, scope: Scope) -> QueryPlan:
    """Translate a normalized query into predicates for CatalogStore.run_plan()."""
    where: list = [listings.c.deleted_at.is_(None)]

    if isinstance(scope, PublicScope):
        where.append(listings.c.status == ListingStatus.available.value)
    elif isinstance(scope, OwnerScope):
        where.append(listings.c.owner_id == scope.owner_id)
        if query.status is not None:
            where.append(listings.c.status == query.status.value)
    elif isinstance(scope, AllScope):
        if query.status is not None:
            where.append(listings.c.status == query.status.value)
    else:
        raise TypeError(f"Unknown listing scope: {scope!r}")

    if query.search:
        where.append(
            or_(
                listings.c.title.icontains(query.search, autoescape=True),
                listings.c.description.icontains(query.search, autoescape=True),
            )
        )
    if query.category:
        where.append(categories.c.name == query.category)
    if query.condition:
        where.append(listings.c.condition == query.condition)
    if query.min_price is not None:
        where.append(listings.c.price >= query.min_price)
    if query.max_price is not None:
        where.append(listings.c.price <= query.max_price)

    column = listings.c[query.sort_field]
    if query.descending:
        order_by = (column.desc(), listings.c.id.desc())
    else:
        order_by = (column.asc(), listings.c.id.asc())

    return QueryPlan(
        where=tuple(where),
        order_by=order_by,
        offset=query.offset,
        limit=query.page_size,
        page=query.page,
        page_size=query.page_size,
    )

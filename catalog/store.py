"""
catalog/store.py -- SQLAlchemy Core persistence layer for categories and listings.

Pattern: Repository + Data Mapper (same as auth/store.py).
CatalogStore is the repository; _row_to_* functions are the mappers.

Every listing read goes through one joined SELECT (listings JOIN users JOIN
categories) so a ListingView arrives with its owner and category already
expanded. The owner columns are projected explicitly and password_hash is
never selected, so it cannot leak into a view even by accident.

Search, filter, sort and pagination are decided in catalog/query.py. This
module only executes the resulting plan; it does not parse user input.

Soft delete:
  listings.deleted_at is the lifecycle column. Every read filters
  deleted_at IS NULL explicitly unless the caller asks for include_deleted.
  Rows are never purged.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    and_,
    func,
    select,
)

from auth.models import AccountView, Role
from auth.store import users
from catalog.models import (
    Category,
    CategoryStat,
    Listing,
    ListingStatus,
    ListingView,
    NewListing,
)
from core.db import Database, metadata
from core.lifecycle import from_column

logger = logging.getLogger("bechdo.catalog")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("slug", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("icon", String(16), nullable=False, server_default=""),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

listings = Table(
    "listings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False),
    Column("price", Float, nullable=False),
    Column("images", Text, nullable=False),  # JSON array of URIs
    Column("condition", String(50), nullable=False),
    Column("location", String(200), nullable=False, server_default=""),
    Column("is_negotiable", Boolean, nullable=False, server_default="0"),
    Column("status", String(20), nullable=False, server_default=ListingStatus.available.value),
    Column("view_count", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("sold_at", String(32)),
    Column("deleted_at", String(32)),
    Index("ix_listings_status", "status"),
    Index("ix_listings_owner_id", "owner_id"),
    Index("ix_listings_category_id", "category_id"),
)

# listings -> owner -> category, shared by the page query and its count query
# so filters on category name work identically in both.
listing_join = listings.join(users, listings.c.owner_id == users.c.id).join(
    categories, listings.c.category_id == categories.c.id
)

_OWNER_COLUMNS = [c.label(f"u_{c.name}") for c in users.c if c.name != "password_hash"]
_CATEGORY_COLUMNS = [c.label(f"c_{c.name}") for c in categories.c]

# Reference data inserted by seed_default_categories(): (name, description, icon).
DEFAULT_CATEGORIES = (
    ("Electronics", "Electronic devices and gadgets", "⚡"),
    ("Furniture", "Home and office furniture", "🪑"),
    ("Clothing", "Clothes and accessories", "👕"),
    ("Books", "Books and educational materials", "📚"),
    ("Sports", "Sports and fitness equipment", "⚽"),
    ("Vehicles", "Cars, bikes and other vehicles", "🚗"),
    ("Home Appliances", "Kitchen and household appliances", "🏠"),
    ("Others", "Miscellaneous items", "📦"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _view_select():
    return select(listings, *_OWNER_COLUMNS, *_CATEGORY_COLUMNS).select_from(listing_join)


def _encode_changes(changes: dict) -> dict:
    values = dict(changes)
    if "images" in values:
        values["images"] = json.dumps(list(values["images"]))
    if "status" in values:
        values["status"] = ListingStatus(values["status"]).value
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    """Repository for Category and Listing entities.

    Usage:
        store = CatalogStore(db)
        store.seed_default_categories()
        listing_id = store.create_listing(owner_id, NewListing(...))
        view = store.get_view(listing_id)
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        db.create_schema()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, name: str, description: str = "", icon: str = "", is_active: bool = True) -> int:
        """Insert a category. IntegrityError propagates on a duplicate name or slug."""
        with self.db.engine.connect() as conn:
            result = conn.execute(
                categories.insert().values(
                    name=name,
                    slug=slugify(name),
                    description=description,
                    icon=icon,
                    is_active=is_active,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def seed_default_categories(self) -> int:
        """Insert any default category that is not present yet. Returns the number inserted."""
        with self.db.engine.connect() as conn:
            existing = set(conn.execute(select(categories.c.name)).scalars())
        inserted = 0
        for name, description, icon in DEFAULT_CATEGORIES:
            if name in existing:
                continue
            self.create_category(name, description, icon)
            inserted += 1
        if inserted:
            logger.info("Seeded %d default categories", inserted)
        return inserted

    def get_category(self, category_id: int) -> Category | None:
        with self.db.engine.connect() as conn:
            row = conn.execute(categories.select().where(categories.c.id == category_id)).fetchone()
        return _row_to_category(row) if row is not None else None

    def list_categories(self, active_only: bool = True) -> list[Category]:
        query = categories.select().order_by(categories.c.name)
        if active_only:
            query = query.where(categories.c.is_active.is_(True))
        with self.db.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_category(r) for r in rows]

    def category_stats(self) -> list[CategoryStat]:
        """Available, non-deleted listing count per active category.

        Outer join so empty categories report 0. Ordered by count descending,
        then name.
        """
        product_count = func.count(listings.c.id).label("product_count")
        query = (
            select(categories, product_count)
            .select_from(
                categories.outerjoin(
                    listings,
                    and_(
                        listings.c.category_id == categories.c.id,
                        listings.c.status == ListingStatus.available.value,
                        listings.c.deleted_at.is_(None),
                    ),
                )
            )
            .where(categories.c.is_active.is_(True))
            .group_by(*categories.c)
            .order_by(product_count.desc(), categories.c.name)
        )
        with self.db.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [CategoryStat(category=_row_to_category(r), product_count=r.product_count) for r in rows]

    # ------------------------------------------------------------------
    # Listings: reads
    # ------------------------------------------------------------------

    def run_plan(self, plan) -> tuple[list[ListingView], int]:
        """Execute a catalog.query.QueryPlan. Returns (page of views, total matching rows).

        Count and page are read on the same connection. Under concurrent
        writes total may differ from what a later page sees; pagination
        metadata is a snapshot, not a promise.
        """
        count_query = select(func.count()).select_from(listing_join).where(*plan.where)
        page_query = (
            _view_select().where(*plan.where).order_by(*plan.order_by).offset(plan.offset).limit(plan.limit)
        )
        with self.db.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return [_row_to_view(r) for r in rows], total

    def get_listing(self, listing_id: int, include_deleted: bool = False) -> Listing | None:
        query = listings.select().where(listings.c.id == listing_id)
        if not include_deleted:
            query = query.where(listings.c.deleted_at.is_(None))
        with self.db.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_listing(row) if row is not None else None

    def get_view(self, listing_id: int, include_deleted: bool = False) -> ListingView | None:
        query = _view_select().where(listings.c.id == listing_id)
        if not include_deleted:
            query = query.where(listings.c.deleted_at.is_(None))
        with self.db.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_view(row) if row is not None else None

    def owner_can_list(self, owner_id: int) -> bool:
        """Return True if owner_id is a live, active account."""
        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(users.c.id).where(
                    users.c.id == owner_id,
                    users.c.is_active.is_(True),
                    users.c.deleted_at.is_(None),
                )
            ).fetchone()
        return row is not None

    def count_listings_by_status(self) -> dict[str, int]:
        """Return {status: count} over non-deleted listings. Every status is present."""
        counts = {s.value: 0 for s in ListingStatus}
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(listings.c.status, func.count())
                .where(listings.c.deleted_at.is_(None))
                .group_by(listings.c.status)
            ).fetchall()
        for status, count in rows:
            counts[status] = count
        return counts

    # ------------------------------------------------------------------
    # Listings: writes
    # ------------------------------------------------------------------

    def create_listing(self, owner_id: int, data: NewListing) -> int:
        """Insert an available listing and return its id.

        IntegrityError propagates if owner_id or category_id does not exist
        (foreign keys are enforced; see core/db.py).
        """
        now = _now_iso()
        with self.db.engine.connect() as conn:
            result = conn.execute(
                listings.insert().values(
                    owner_id=owner_id,
                    category_id=data.category_id,
                    title=data.title,
                    description=data.description,
                    price=data.price,
                    images=json.dumps(list(data.images)),
                    condition=data.condition,
                    location=data.location,
                    is_negotiable=data.is_negotiable,
                    status=ListingStatus.available.value,
                    view_count=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_listing(self, listing_id: int, changes: dict) -> bool:
        """Apply column changes to a live listing. Returns True if a row was updated.

        Callers pass already-validated values; keys must be listings columns.
        """
        unknown = set(changes) - set(listings.c.keys())
        if unknown:
            raise ValueError(f"Unknown listing fields: {sorted(unknown)!r}")
        with self.db.engine.connect() as conn:
            result = conn.execute(
                listings.update()
                .where(listings.c.id == listing_id, listings.c.deleted_at.is_(None))
                .values(**_encode_changes(changes), updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def increment_view_count(self, listing_id: int) -> bool:
        """Add one to view_count as a single atomic UPDATE.

        view_count = view_count + 1 is evaluated by the database, so
        concurrent fetches never overwrite each other's increment.
        """
        with self.db.engine.connect() as conn:
            result = conn.execute(
                listings.update()
                .where(listings.c.id == listing_id, listings.c.deleted_at.is_(None))
                .values(view_count=listings.c.view_count + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete(self, listing_id: int) -> bool:
        """Stamp deleted_at on a live listing. Returns False if already deleted or absent."""
        now = _now_iso()
        with self.db.engine.connect() as conn:
            result = conn.execute(
                listings.update()
                .where(listings.c.id == listing_id, listings.c.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_category(row, prefix: str = "") -> Category:
    m = row._mapping
    return Category(
        id=m[f"{prefix}id"],
        name=m[f"{prefix}name"],
        slug=m[f"{prefix}slug"],
        description=m[f"{prefix}description"] or "",
        icon=m[f"{prefix}icon"] or "",
        is_active=bool(m[f"{prefix}is_active"]),
        created_at=m[f"{prefix}created_at"],
    )


def _row_to_listing(row) -> Listing:
    return Listing(
        id=row.id,
        owner_id=row.owner_id,
        category_id=row.category_id,
        title=row.title,
        description=row.description,
        price=row.price,
        images=json.loads(row.images),
        condition=row.condition,
        location=row.location or "",
        is_negotiable=bool(row.is_negotiable),
        status=ListingStatus(row.status),
        view_count=row.view_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
        sold_at=row.sold_at,
        lifecycle=from_column(row.deleted_at),
    )


def _row_to_owner(row) -> AccountView:
    m = row._mapping
    return AccountView(
        id=m["u_id"],
        email=m["u_email"],
        username=m["u_username"],
        first_name=m["u_first_name"],
        last_name=m["u_last_name"],
        phone=m["u_phone"] or "",
        address=m["u_address"] or "",
        city=m["u_city"] or "",
        state=m["u_state"] or "",
        pin_code=m["u_pin_code"] or "",
        role=Role(m["u_role"]),
        is_active=bool(m["u_is_active"]),
        is_verified=bool(m["u_is_verified"]),
        created_at=m["u_created_at"],
        updated_at=m["u_updated_at"],
    )


def _row_to_view(row) -> ListingView:
    listing = _row_to_listing(row)
    return ListingView(
        id=listing.id,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        images=tuple(listing.images),
        condition=listing.condition,
        location=listing.location,
        is_negotiable=listing.is_negotiable,
        status=listing.status,
        view_count=listing.view_count,
        created_at=listing.created_at,
        updated_at=listing.updated_at,
        sold_at=listing.sold_at,
        owner=_row_to_owner(row),
        category=_row_to_category(row, prefix="c_"),
        lifecycle=listing.lifecycle,
    )

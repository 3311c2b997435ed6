"""
catalog/service.py -- Listing rules: browse, fetch, create, update, delete.

ListingService sits between the routes and CatalogStore. It owns the
decisions the store should not make:

  Ownership   Only the listing's owner or a privileged role may update or
              delete it. The check runs after the listing is loaded and
              BEFORE the update body is parsed, so a stranger gets 403 no
              matter what they send.

  Visibility  Public fetch hides `hidden` listings (404) and every
              deleted one. Sold listings stay visible.

  Views       get() bumps view_count once per fetch. The counter is
              best-effort: a failed increment is logged and the read
              still succeeds.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import RequestIdentity, is_privileged
from catalog.models import (
    Category,
    CategoryStat,
    Listing,
    ListingPatch,
    ListingStatus,
    ListingView,
    NewListing,
    Page,
    Pagination,
)
from catalog.query import AllScope, ListingQuery, OwnerScope, PublicScope, Scope, build_plan
from catalog.store import CatalogStore
from core.config import Settings
from core.errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger("bechdo.catalog")

QueryParams = Mapping[str, Optional[str]]


class ListingService:
    """Listing use-cases on top of a CatalogStore.

    Usage:
        service = ListingService(CatalogStore(db), get_settings())
        page = service.browse({"search": "bike", "page": "2"})
        view = service.get(listing_id)
    """

    def __init__(self, store: CatalogStore, settings: Settings) -> None:
        self.store = store
        self.default_page_size = settings.default_page_size
        self.max_page_size = settings.max_page_size

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def parse_query(self, params: QueryParams) -> ListingQuery:
        return ListingQuery.from_params(
            **params,
            default_page_size=self.default_page_size,
            max_page_size=self.max_page_size,
        )

    def browse(self, params: QueryParams) -> Page:
        """Public search over available listings."""
        return self._run(self.parse_query(params), PublicScope())

    def my_listings(self, identity: RequestIdentity, params: QueryParams) -> Page:
        return self._run(self.parse_query(params), OwnerScope(owner_id=identity.subject_id))

    def admin_listings(self, params: QueryParams) -> Page:
        return self._run(self.parse_query(params), AllScope())

    def get(self, listing_id: int) -> ListingView:
        """Public fetch with the view-count side effect."""
        view = self.store.get_view(listing_id)
        if view is None or view.status is ListingStatus.hidden:
            raise NotFound("Product not found")
        try:
            counted = self.store.increment_view_count(listing_id)
        except SQLAlchemyError:
            logger.warning("View count increment failed for listing id=%d", listing_id, exc_info=True)
            return view
        return replace(view, view_count=view.view_count + 1) if counted else view

    def categories(self) -> list[Category]:
        return self.store.list_categories(active_only=True)

    def category_stats(self) -> list[CategoryStat]:
        return self.store.category_stats()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, identity: RequestIdentity, data: NewListing) -> ListingView:
        """Create an available listing owned by the caller."""
        self._require_category(data.category_id)
        if not self.store.owner_can_list(identity.subject_id):
            raise NotFound("User not found")
        try:
            listing_id = self.store.create_listing(identity.subject_id, data)
        except IntegrityError as exc:
            # Category or owner vanished between the checks and the insert.
            raise ValidationError("Invalid category ID") from exc
        logger.info("Listing created: id=%d owner=%d", listing_id, identity.subject_id)
        return self._require_view(listing_id)

    def update(
        self,
        identity: RequestIdentity,
        listing_id: int,
        parse_patch: Callable[[], ListingPatch],
    ) -> ListingView:
        """Apply a partial update.

        parse_patch is only called once ownership is established; it raises
        ValidationError on a malformed body.
        """
        listing = self._require_listing(listing_id)
        self._check_owner(identity, listing, "You can only update your own products")

        changes = parse_patch().changes()
        if "category_id" in changes:
            self._require_category(changes["category_id"])
        if "status" in changes:
            new_status = ListingStatus(changes["status"])
            if new_status is ListingStatus.sold and listing.status is not ListingStatus.sold:
                changes["sold_at"] = datetime.now(timezone.utc).isoformat()
            elif new_status is not ListingStatus.sold:
                changes["sold_at"] = None

        if changes and not self.store.update_listing(listing_id, changes):
            raise NotFound("Product not found")
        if changes:
            logger.info("Listing updated: id=%d by=%d fields=%s", listing_id, identity.subject_id, sorted(changes))
        return self._require_view(listing_id)

    def delete(self, identity: RequestIdentity, listing_id: int) -> None:
        """Soft-delete a listing. The row stays readable with include_deleted."""
        listing = self._require_listing(listing_id)
        self._check_owner(identity, listing, "You can only delete your own products")
        if not self.store.soft_delete(listing_id):
            raise NotFound("Product not found")
        logger.info("Listing deleted: id=%d by=%d", listing_id, identity.subject_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, query: ListingQuery, scope: Scope) -> Page:
        plan = build_plan(query, scope)
        items, total = self.store.run_plan(plan)
        return Page(items=items, pagination=Pagination.compute(plan.page, plan.page_size, total))

    def _require_listing(self, listing_id: int) -> Listing:
        listing = self.store.get_listing(listing_id)
        if listing is None:
            raise NotFound("Product not found")
        return listing

    def _require_view(self, listing_id: int) -> ListingView:
        view = self.store.get_view(listing_id)
        if view is None:
            raise NotFound("Product not found")
        return view

    def _require_category(self, category_id: int) -> Category:
        category = self.store.get_category(category_id)
        if category is None or not category.is_active:
            raise ValidationError("Invalid category ID")
        return category

    @staticmethod
    def _check_owner(identity: RequestIdentity, listing: Listing, message: str) -> None:
        if listing.owner_id != identity.subject_id and not is_privileged(identity.role):
            raise Forbidden(message)

"""Unit tests for catalog/service.py -- listing rules.

Covers:
- ownership: a stranger is refused before the update body is even parsed
- admins may update and delete any listing
- status -> sold stamps sold_at; leaving sold clears it
- soft delete keeps the row readable with include_deleted
- view count: two fetches add exactly two; a failing counter does not fail the read
- hidden listings are invisible to public fetch
- create validates the category
- category stats count only available listings
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.models import RequestIdentity, Role
from catalog.models import ListingPatch, ListingStatus, NewListing
from catalog.service import ListingService
from core.config import get_settings
from core.errors import Forbidden, NotFound, ValidationError
from core.lifecycle import Deleted


@pytest.fixture
def service(catalog) -> ListingService:
    return ListingService(catalog, get_settings())


@pytest.fixture
def people(make_account):
    owner = make_account("owner@example.com")
    stranger = make_account("stranger@example.com")
    admin = make_account("admin@example.com", role=Role.admin)
    return (
        RequestIdentity(owner, "owner@example.com", Role.user),
        RequestIdentity(stranger, "stranger@example.com", Role.user),
        RequestIdentity(admin, "admin@example.com", Role.admin),
    )


@pytest.fixture
def electronics(catalog) -> int:
    return next(c.id for c in catalog.list_categories() if c.name == "Electronics")


def _new(category_id: int, **overrides) -> NewListing:
    fields = dict(
        category_id=category_id,
        title="Camera",
        description="Mirrorless body",
        price=450.0,
        images=("https://img.example/cam.jpg",),
        condition="used",
        location="Delhi",
    )
    fields.update(overrides)
    return NewListing(**fields)


def _must_not_parse() -> ListingPatch:
    raise AssertionError("body parsed before ownership check")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_starts_available_with_zero_views(service, people, electronics):
    owner, _, _ = people
    view = service.create(owner, _new(electronics))
    assert view.status is ListingStatus.available
    assert view.view_count == 0
    assert view.owner.id == owner.subject_id
    assert view.category.id == electronics


def test_create_with_unknown_category_rejected(service, people):
    owner, _, _ = people
    with pytest.raises(ValidationError) as exc_info:
        service.create(owner, _new(9999))
    assert exc_info.value.message == "Invalid category ID"


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


def test_stranger_update_forbidden_before_body_is_parsed(service, people, electronics):
    owner, stranger, _ = people
    listing = service.create(owner, _new(electronics))
    with pytest.raises(Forbidden):
        service.update(stranger, listing.id, _must_not_parse)


def test_update_missing_listing_is_not_found(service, people):
    owner, _, _ = people
    with pytest.raises(NotFound):
        service.update(owner, 12345, _must_not_parse)


def test_owner_update_applies_only_supplied_fields(service, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    updated = service.update(owner, listing.id, lambda: ListingPatch(price=399.0))
    assert updated.price == 399.0
    assert updated.title == "Camera"
    assert updated.location == "Delhi"


def test_admin_may_update_any_listing(service, people, electronics):
    owner, _, admin = people
    listing = service.create(owner, _new(electronics))
    updated = service.update(admin, listing.id, lambda: ListingPatch(status=ListingStatus.hidden))
    assert updated.status is ListingStatus.hidden


def test_update_to_unknown_category_rejected(service, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    with pytest.raises(ValidationError):
        service.update(owner, listing.id, lambda: ListingPatch(category_id=9999))


def test_marking_sold_stamps_sold_at(service, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    sold = service.update(owner, listing.id, lambda: ListingPatch(status=ListingStatus.sold))
    assert sold.status is ListingStatus.sold
    assert sold.sold_at
    relisted = service.update(owner, listing.id, lambda: ListingPatch(status=ListingStatus.available))
    assert relisted.sold_at is None


def test_stranger_delete_forbidden(service, people, electronics):
    owner, stranger, _ = people
    listing = service.create(owner, _new(electronics))
    with pytest.raises(Forbidden):
        service.delete(stranger, listing.id)


def test_delete_is_soft(service, catalog, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    service.delete(owner, listing.id)

    with pytest.raises(NotFound):
        service.get(listing.id)
    audit = catalog.get_listing(listing.id, include_deleted=True)
    assert isinstance(audit.lifecycle, Deleted)
    with pytest.raises(NotFound):
        service.delete(owner, listing.id)


def test_admin_may_delete_any_listing(service, people, electronics):
    owner, _, admin = people
    listing = service.create(owner, _new(electronics))
    service.delete(admin, listing.id)
    with pytest.raises(NotFound):
        service.get(listing.id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_two_fetches_add_two_views(service, catalog, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    service.get(listing.id)
    second = service.get(listing.id)
    assert second.view_count == 2
    assert catalog.get_listing(listing.id).view_count == 2


def test_view_count_failure_does_not_fail_read(service, catalog, people, electronics, monkeypatch):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))

    def broken(listing_id):
        raise OperationalError("UPDATE listings", {}, Exception("database is locked"))

    monkeypatch.setattr(catalog, "increment_view_count", broken)
    view = service.get(listing.id)
    assert view.id == listing.id
    assert view.view_count == 0


def test_hidden_listing_not_publicly_fetchable(service, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    service.update(owner, listing.id, lambda: ListingPatch(status=ListingStatus.hidden))
    with pytest.raises(NotFound):
        service.get(listing.id)


def test_sold_listing_still_fetchable(service, people, electronics):
    owner, _, _ = people
    listing = service.create(owner, _new(electronics))
    service.update(owner, listing.id, lambda: ListingPatch(status=ListingStatus.sold))
    assert service.get(listing.id).status is ListingStatus.sold


def test_my_listings_scoped_to_caller(service, people, electronics):
    owner, stranger, _ = people
    mine = service.create(owner, _new(electronics))
    service.create(stranger, _new(electronics, title="Other"))
    page = service.my_listings(owner, {})
    assert [v.id for v in page.items] == [mine.id]
    assert page.pagination.total_count == 1


def test_browse_clamps_page_size(service, people, electronics):
    owner, _, _ = people
    service.create(owner, _new(electronics))
    page = service.browse({"page_size": "500"})
    assert page.pagination.page_size == get_settings().max_page_size


def test_category_stats_count_available_only(service, people, electronics):
    owner, _, _ = people
    service.create(owner, _new(electronics))
    hidden = service.create(owner, _new(electronics))
    service.update(owner, hidden.id, lambda: ListingPatch(status=ListingStatus.hidden))

    stats = {s.category.name: s.product_count for s in service.category_stats()}
    assert stats["Electronics"] == 1
    assert stats["Books"] == 0
    assert service.category_stats()[0].category.name == "Electronics"

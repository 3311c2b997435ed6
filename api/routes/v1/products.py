"""
api/routes/v1/products.py -- Listing REST endpoints.

Routes:
  GET    /api/v1/products        -- public search over available listings
  GET    /api/v1/products/{id}   -- public fetch; counts one view
  POST   /api/v1/products        -- create a listing owned by the caller
  PUT    /api/v1/products/{id}   -- partial update (owner or admin)
  DELETE /api/v1/products/{id}   -- soft delete (owner or admin)
  GET    /api/v1/my-products     -- the caller's own listings, any status

Query parameters (list routes):
  search, category, condition, min_price|minPrice, max_price|maxPrice,
  sort, order, page, limit|page_size, and status on /my-products.

  They are read straight off the query string as raw text and normalized by
  catalog.query.ListingQuery. Junk paging or price values fall back to
  defaults instead of failing the request.

Ownership:
  PUT reads the raw body first but only parses it after ListingService has
  confirmed the caller may touch the listing, so a stranger always gets 403
  regardless of what they send.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import QueryParams

from api.models import ListingCreate, ListingPageResponse, ListingResponse, ListingUpdate, MessageResponse
from auth.gate import authenticated
from auth.models import RequestIdentity
from catalog.models import ListingPatch
from catalog.service import ListingService
from core.db import MAX_INTEGER

# Auth policy:
# - GET    /api/v1/products:       public
# - GET    /api/v1/products/{id}:  public (hidden listings are 404)
# - POST   /api/v1/products:       requires auth (authenticated)
# - PUT    /api/v1/products/{id}:  requires auth + ownership check in ListingService
# - DELETE /api/v1/products/{id}:  requires auth + ownership check in ListingService
# - GET    /api/v1/my-products:    requires auth (authenticated)
router = APIRouter()

# Path ids past the 64-bit range are rejected with 400 before any lookup.
RowId = Annotated[int, Path(gt=0, le=MAX_INTEGER)]


# ---------------------------------------------------------------------------
# Query-string helpers
# ---------------------------------------------------------------------------


def _first(query: QueryParams, *names: str) -> Optional[str]:
    for name in names:
        value = query.get(name)
        if value is not None:
            return value
    return None


def listing_params(request: Request, with_status: bool = False) -> dict[str, Optional[str]]:
    """Collect raw listing query parameters, resolving accepted aliases."""
    query = request.query_params
    params = {
        "search": query.get("search"),
        "category": query.get("category"),
        "condition": query.get("condition"),
        "min_price": _first(query, "min_price", "minPrice"),
        "max_price": _first(query, "max_price", "maxPrice"),
        "sort": query.get("sort"),
        "order": query.get("order"),
        "page": query.get("page"),
        "page_size": _first(query, "limit", "page_size"),
    }
    if with_status:
        params["status"] = query.get("status")
    return params


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("/products", response_model=ListingPageResponse)
def list_products(request: Request) -> ListingPageResponse:
    """Search available listings. Always 200; an impossible filter is an empty page."""
    service: ListingService = request.app.state.listing_service
    return ListingPageResponse.from_page(service.browse(listing_params(request)))


@router.get("/products/{listing_id}", response_model=ListingResponse)
def get_product(request: Request, listing_id: RowId) -> ListingResponse:
    service: ListingService = request.app.state.listing_service
    return ListingResponse.from_view(service.get(listing_id))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/products", response_model=ListingResponse, status_code=201)
def create_product(
    request: Request,
    body: ListingCreate,
    identity: RequestIdentity = Depends(authenticated),
) -> ListingResponse:
    """Create an available listing. 400 "Invalid category ID" for an unknown category."""
    service: ListingService = request.app.state.listing_service
    return ListingResponse.from_view(service.create(identity, body.to_new_listing()))


@router.put("/products/{listing_id}", response_model=ListingResponse)
async def update_product(
    request: Request,
    listing_id: RowId,
    identity: RequestIdentity = Depends(authenticated),
) -> ListingResponse:
    """Partially update a listing. Only fields present in the body change.

    Setting status to "sold" stamps sold_at.
    """
    service: ListingService = request.app.state.listing_service
    raw = await request.body()

    def parse_patch() -> ListingPatch:
        # pydantic.ValidationError is rendered as 400 by api/main.py.
        return ListingUpdate.model_validate_json(raw).to_patch()

    view = await run_in_threadpool(service.update, identity, listing_id, parse_patch)
    return ListingResponse.from_view(view)


@router.delete("/products/{listing_id}", response_model=MessageResponse)
def delete_product(
    request: Request,
    listing_id: RowId,
    identity: RequestIdentity = Depends(authenticated),
) -> MessageResponse:
    service: ListingService = request.app.state.listing_service
    service.delete(identity, listing_id)
    return MessageResponse(message="Product deleted successfully")


@router.get("/my-products", response_model=ListingPageResponse)
def my_products(request: Request, identity: RequestIdentity = Depends(authenticated)) -> ListingPageResponse:
    """The caller's listings in any status, optionally filtered by ?status=."""
    service: ListingService = request.app.state.listing_service
    return ListingPageResponse.from_page(service.my_listings(identity, listing_params(request, with_status=True)))

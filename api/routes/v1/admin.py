"""
api/routes/v1/admin.py -- Administrative REST endpoints.

Routes:
  GET   /api/v1/admin/users         -- every account
  PATCH /api/v1/admin/users/{id}    -- change role / is_active / is_verified
  GET   /api/v1/admin/products      -- every non-deleted listing, any status
  GET   /api/v1/admin/dashboard     -- headline counts

All routes sit behind the admin_only gate: 401 without a valid token, 403
for a valid token whose role is not admin.

Security:
  PATCH /users/{id} blocks self-deactivation and blocks deactivating or
  demoting the last active admin (AuthService.admin_update).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import (
    AccountAdminPatch,
    AccountListResponse,
    AccountResponse,
    DashboardResponse,
    ListingPageResponse,
)
from api.routes.v1.products import RowId, listing_params
from auth.gate import admin_only
from auth.models import RequestIdentity
from auth.service import AuthService
from auth.store import AccountStore
from catalog.service import ListingService
from catalog.store import CatalogStore

router = APIRouter()


@router.get("/admin/users", response_model=AccountListResponse)
def list_users(request: Request, identity: RequestIdentity = Depends(admin_only)) -> AccountListResponse:
    service: AuthService = request.app.state.auth_service
    return AccountListResponse(items=[AccountResponse.from_view(v) for v in service.list_accounts()])


@router.patch("/admin/users/{account_id}", response_model=AccountResponse)
def update_user(
    request: Request,
    account_id: RowId,
    body: AccountAdminPatch,
    identity: RequestIdentity = Depends(admin_only),
) -> AccountResponse:
    """Update an account's role or flags. Only fields present in the body change."""
    service: AuthService = request.app.state.auth_service
    view = service.admin_update(
        identity,
        account_id,
        role=body.role,
        is_active=body.is_active,
        is_verified=body.is_verified,
    )
    return AccountResponse.from_view(view)


@router.get("/admin/products", response_model=ListingPageResponse)
def list_all_products(request: Request, identity: RequestIdentity = Depends(admin_only)) -> ListingPageResponse:
    service: ListingService = request.app.state.listing_service
    return ListingPageResponse.from_page(service.admin_listings(listing_params(request, with_status=True)))


@router.get("/admin/dashboard", response_model=DashboardResponse)
def dashboard(request: Request, identity: RequestIdentity = Depends(admin_only)) -> DashboardResponse:
    accounts: AccountStore = request.app.state.accounts
    catalog: CatalogStore = request.app.state.catalog
    by_status = catalog.count_listings_by_status()
    return DashboardResponse(
        total_users=accounts.count_accounts(),
        active_users=accounts.count_accounts(active_only=True),
        total_products=sum(by_status.values()),
        products_by_status=by_status,
        total_categories=len(catalog.list_categories(active_only=False)),
    )

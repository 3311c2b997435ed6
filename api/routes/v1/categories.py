"""
api/routes/v1/categories.py -- Category reference data.

Routes:
  GET /api/v1/categories        -- active categories, by name
  GET /api/v1/categories/stats  -- available listing count per active category

Both public. Categories are seeded at startup (or with `python main.py seed`)
and are not editable through the API.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import CategoryListResponse, CategoryResponse, CategoryStatRow, CategoryStatsResponse
from catalog.service import ListingService

router = APIRouter()


@router.get("/categories", response_model=CategoryListResponse)
def list_categories(request: Request) -> CategoryListResponse:
    service: ListingService = request.app.state.listing_service
    return CategoryListResponse(items=[CategoryResponse.from_category(c) for c in service.categories()])


@router.get("/categories/stats", response_model=CategoryStatsResponse)
def category_stats(request: Request) -> CategoryStatsResponse:
    """Busiest categories first; empty categories are included with a count of 0."""
    service: ListingService = request.app.state.listing_service
    return CategoryStatsResponse(items=[CategoryStatRow.from_stat(s) for s in service.category_stats()])

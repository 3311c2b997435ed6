"""
api/routes/v1/users.py -- Self-service profile endpoints.

Routes:
  GET /api/v1/user/profile          -- current account
  PUT /api/v1/user/profile          -- partial profile update
  PUT /api/v1/user/change-password  -- re-verify current password, set new one

All three require a bearer token. The account is re-read from the store on
every call, so a deactivated account gets 404 here even while its token is
still within its lifetime.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AccountResponse, ChangePasswordRequest, MessageResponse, ProfileUpdate
from auth.gate import authenticated
from auth.models import RequestIdentity
from auth.service import AuthService

router = APIRouter()


@router.get("/user/profile", response_model=AccountResponse)
def get_profile(request: Request, identity: RequestIdentity = Depends(authenticated)) -> AccountResponse:
    service: AuthService = request.app.state.auth_service
    return AccountResponse.from_view(service.get_profile(identity))


@router.put("/user/profile", response_model=AccountResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: RequestIdentity = Depends(authenticated),
) -> AccountResponse:
    """Update only the fields present in the body.

    email, username, role and password are not accepted here; sending any of
    them is a 400.
    """
    service: AuthService = request.app.state.auth_service
    return AccountResponse.from_view(service.update_profile(identity, body.to_patch()))


@router.put("/user/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: RequestIdentity = Depends(authenticated),
) -> MessageResponse:
    """Change the caller's password. Existing tokens stay valid until they expire."""
    service: AuthService = request.app.state.auth_service
    service.change_password(identity, body.current_password, body.new_password)
    return MessageResponse(message="Password updated successfully")

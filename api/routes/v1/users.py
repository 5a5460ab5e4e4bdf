"""
api/routes/v1/users.py -- Account management REST endpoints.

Routes:
  POST /api/users/create  -- create a Manager or User account (Admin only)
  GET  /api/users/me      -- the authenticated caller's own account

Auth policy:
  - POST /api/users/create: require_admin (401 without a valid bearer token,
    403 for any non-Admin role)
  - GET  /api/users/me:     get_current_user
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse, UserCreate, UserCreatedResponse, UserResponse
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.provisioning import AdminProvisioning

router = APIRouter()


@router.post("/users/create", response_model=UserCreatedResponse)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserCreatedResponse:
    """Create an account. With sendOtp (the default) the new user gets a register OTP by mail
    and must verify before logging in; with sendOtp=false the account starts verified.
    """
    provisioning: AdminProvisioning = request.app.state.provisioning
    user_id = provisioning.create_user(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        send_otp=body.send_otp,
    )
    return UserCreatedResponse(message=f"{body.role} created successfully", user_id=user_id)


@router.get("/users/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(message="protected user route", user=UserResponse.from_user(current_user))

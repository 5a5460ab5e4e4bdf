"""
api/routes/v1/auth.py -- OTP, login and session REST endpoints.

Routes:
  POST /api/auth/send-otp       -- mail a one-time code to an existing account
  POST /api/auth/verify-otp     -- redeem a code (register codes verify the account)
  POST /api/auth/login          -- email + password -> access + refresh token
  POST /api/auth/refresh-token  -- refresh token -> new access token
  POST /api/auth/logout         -- revoke a refresh token

All five are public. Handlers only check that required fields are present and
hand over to the services on app.state; domain failures are raised as
AuthError and rendered by the handler in api/main.py.

Handlers are plain `def` so FastAPI runs them in its thread pool: store calls
block, and each one holds a DB connection only for its own statement.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccessTokenResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshTokenRequest,
    SendOtpRequest,
    VerifyOtpRequest,
)
from auth.errors import ValidationError
from auth.otp import OtpEngine
from auth.sessions import SessionManager

router = APIRouter()


@router.post("/auth/send-otp", response_model=MessageResponse)
def send_otp(request: Request, body: SendOtpRequest) -> MessageResponse:
    """Mail a register, login or forgot code to an account an admin already created."""
    if not body.email or not body.type:
        raise ValidationError("email and type required")
    otp_engine: OtpEngine = request.app.state.otp_engine
    otp_engine.issue(body.email, body.type)
    return MessageResponse(message="OTP sent to email")


@router.post("/auth/verify-otp", response_model=MessageResponse)
def verify_otp(request: Request, body: VerifyOtpRequest) -> MessageResponse:
    if not body.email or not body.otp:
        raise ValidationError("email and otp required")
    otp_engine: OtpEngine = request.app.state.otp_engine
    otp_engine.consume(body.email, body.otp)
    return MessageResponse(message="OTP verified")


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Returns both tokens in the body. Cache-Control: no-store keeps them out of
    intermediary caches.
    """
    if not body.email or not body.password:
        raise ValidationError("email and password required")
    sessions: SessionManager = request.app.state.session_manager
    pair = sessions.login(body.email, body.password)
    resp = JSONResponse(
        content=LoginResponse(access_token=pair.access_token, refresh_token=pair.refresh_token).model_dump(
            by_alias=True
        )
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/refresh-token", response_model=AccessTokenResponse)
def refresh_token(request: Request, body: RefreshTokenRequest) -> JSONResponse:
    if not body.refresh_token:
        raise ValidationError("refreshToken required")
    sessions: SessionManager = request.app.state.session_manager
    access = sessions.refresh(body.refresh_token)
    resp = JSONResponse(content=AccessTokenResponse(access_token=access).model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: RefreshTokenRequest) -> MessageResponse:
    """Revoke the given refresh token. Succeeds whether or not it was still live."""
    if not body.refresh_token:
        raise ValidationError("refreshToken required")
    sessions: SessionManager = request.app.state.session_manager
    sessions.logout(body.refresh_token)
    return MessageResponse(message="Logged out")

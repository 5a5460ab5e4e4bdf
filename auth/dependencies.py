"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an access token in the
Authorization: Bearer <token> header. Refresh tokens are never accepted here
(they are signed with a different secret and fail verification).

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles(*roles) wraps get_current_user() and raises HTTP 403 if the
user's role is not in the list; require_admin is require_roles("Admin").

The role checked is the one stored on the user record, so a demotion takes
effect immediately even for tokens minted earlier.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import ROLE_ADMIN, User
from auth.store import CredentialStore
from auth.tokens import TokenService


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via its Bearer token.

    Returns the User on success, None on any failure. Never raises.
    """
    token = _bearer_token(request)
    if not token:
        return None
    token_service: TokenService = request.app.state.token_service
    payload = token_service.verify_access(token)
    if payload is None:
        return None
    store: CredentialStore = request.app.state.credential_store
    return store.find_by_id(payload["id"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthorized", "message": "Unauthorized"},
        )
    return user


def require_roles(*roles: str):
    """Build a dependency that admits only users holding one of `roles`."""

    def _dependency(request: Request) -> User:
        user = get_current_user(request)
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"error": "forbidden", "message": "Access denied - insufficient role"},
            )
        return user

    return _dependency


require_admin = require_roles(ROLE_ADMIN)

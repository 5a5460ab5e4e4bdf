"""
auth/sessions.py -- Password login, access-token refresh and logout.

A session is one row in refresh_tokens. login() creates it, logout() deletes
it, refresh() reads it and mints a fresh access token while leaving the row
(and the refresh token) exactly as they were. Any number of sessions may be
open per user.

The row is authoritative: a refresh token with a perfect signature but no row
is rejected, and a row whose token fails verification is deleted on sight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import (
    AccountNotFoundError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    RefreshTokenRevokedError,
)
from auth.models import RefreshToken
from auth.store import CredentialStore
from auth.tokens import TokenService, verify_password

logger = logging.getLogger("billingauth.auth")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class SessionManager:
    def __init__(self, store: CredentialStore, tokens: TokenService) -> None:
        self.store = store
        self.tokens = tokens

    def login(self, email: str, password: str) -> TokenPair:
        """Check credentials and open a new session.

        Order matters: unknown account, then unverified account, then password.
        An unverified account is refused even with the right password, and no
        token or row is created for it.
        """
        user = self.store.find_by_email(email)
        if user is None:
            raise AccountNotFoundError()
        if not user.is_verified:
            raise EmailNotVerifiedError()
        if not verify_password(password, user.password):
            raise InvalidCredentialsError()

        access = self.tokens.sign_access(user.id, user.role)
        refresh = self.tokens.sign_refresh(user.id)
        self.store.save_refresh_token(
            RefreshToken(user_id=user.id, token=refresh, expires_at=self.tokens.refresh_expiry())
        )
        logger.info("Login succeeded for user id=%s", user.id)
        return TokenPair(access_token=access, refresh_token=refresh)

    def refresh(self, refresh_token: str) -> str:
        """Exchange a live refresh token for a new access token.

        The stored row's expires_at is not consulted; the JWT exp claim is the
        only expiry check.
        """
        record = self.store.find_refresh_token(refresh_token)
        if record is None:
            raise RefreshTokenRevokedError()
        try:
            claims = self.tokens.verify_refresh(refresh_token)
        except InvalidTokenError:
            self.store.delete_refresh_token(refresh_token)
            logger.info("Dropped unverifiable refresh token for user id=%s", record.user_id)
            raise

        user_id = claims["id"]
        user = self.store.find_by_id(user_id)
        return self.tokens.sign_access(user_id, user.role if user is not None else None)

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Unknown tokens are fine."""
        removed = self.store.delete_refresh_token(refresh_token)
        if removed:
            logger.info("Session closed (%d refresh token row removed)", removed)

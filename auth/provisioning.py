"""
auth/provisioning.py -- Account creation by administrators, and the first-admin bootstrap.

There is no self-registration. Every account is created here:
  - AdminProvisioning.create_user(): an Admin creates a Manager or User,
    optionally mailing a register OTP the new user must redeem before login.
  - ensure_first_admin(): runs once at process start so a fresh database has
    somebody who can call create_user().
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import EmailAlreadyRegisteredError, InvalidRoleError, ValidationError
from auth.models import OTP_REGISTER, PROVISIONABLE_ROLES, ROLE_ADMIN, ROLE_USER, User
from auth.otp import OtpEngine
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.config import Settings

logger = logging.getLogger("billingauth.auth")


class AdminProvisioning:
    def __init__(self, store: CredentialStore, otp_engine: OtpEngine, bcrypt_rounds: int = 10) -> None:
        self.store = store
        self.otp_engine = otp_engine
        self.bcrypt_rounds = bcrypt_rounds

    def create_user(
        self,
        name: str | None,
        email: str | None,
        password: str | None,
        role: str = ROLE_USER,
        send_otp: bool = True,
    ) -> int:
        """Create a Manager or User account and return its id.

        The role is checked before anything else, so asking for an Admin fails
        with InvalidRoleError whatever the other fields hold.

        send_otp=True leaves the account unverified and mails a register OTP;
        send_otp=False creates it already verified.
        """
        if role not in PROVISIONABLE_ROLES:
            raise InvalidRoleError()
        if not name or not email or not password:
            raise ValidationError("name, email and password required")
        if self.store.find_by_email(email) is not None:
            raise EmailAlreadyRegisteredError()

        user = User(
            name=name,
            email=email,
            password=hash_password(password, rounds=self.bcrypt_rounds),
            role=role,
            is_verified=not send_otp,
        )
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            # Lost the race against a concurrent create with the same email.
            raise EmailAlreadyRegisteredError() from exc
        logger.info("Created %s account id=%s (send_otp=%s)", role, user.id, send_otp)

        if send_otp:
            self.otp_engine.issue_for_user(user, OTP_REGISTER, welcome=True)
        return user.id


def ensure_first_admin(store: CredentialStore, settings: Settings) -> int | None:
    """Create the initial Admin when the database has none.

    Needs FIRST_ADMIN_NAME, FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD. The
    admin is created verified. Returns the new id, or None when skipped.
    """
    if store.has_admin():
        return None
    if not settings.first_admin_configured:
        logger.warning("FIRST_ADMIN_* not set -- skipping initial admin creation.")
        return None

    admin = User(
        name=settings.first_admin_name,
        email=settings.first_admin_email,
        password=hash_password(settings.first_admin_password, rounds=settings.bcrypt_rounds),
        role=ROLE_ADMIN,
        is_verified=True,
    )
    admin_id = store.create_user(admin)
    logger.info("First admin created with id=%s (%s)", admin_id, settings.first_admin_email)
    return admin_id

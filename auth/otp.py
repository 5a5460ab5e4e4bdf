"""
auth/otp.py -- One-time passcode issuance and consumption.

Lifecycle of a code:
  issue()   -> one OtpRecord row (used=0, expires_at=now+TTL) + one email
  consume() -> newest valid row for (email, code) is flagged used; a register
               code also marks the owning user verified

Codes are six decimal digits drawn uniformly from [100000, 999999] with the
secrets CSPRNG. Nothing here throttles attempts or purges old rows.

The row is written BEFORE the email is sent. If delivery fails the row stays
behind (harmless: nobody knows the code) and EmailDeliveryError propagates.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from auth.errors import AlreadyVerifiedError, InvalidOtpError, UserNotFoundError, ValidationError
from auth.models import OTP_REGISTER, OTP_TYPES, OtpRecord, User
from auth.store import CredentialStore
from core.mailer import Mailer

logger = logging.getLogger("billingauth.otp")

_CODE_MIN = 100000
_CODE_MAX = 999999


def generate_code() -> str:
    """Return a 6-digit code, uniform over [100000, 999999]."""
    return str(_CODE_MIN + secrets.randbelow(_CODE_MAX - _CODE_MIN + 1))


class OtpEngine:
    def __init__(self, store: CredentialStore, mailer: Mailer, ttl_minutes: int = 10) -> None:
        self.store = store
        self.mailer = mailer
        self.ttl_minutes = ttl_minutes

    def issue(self, email: str, otp_type: str) -> OtpRecord:
        """Issue a code of `otp_type` to an existing account.

        Raises ValidationError for an unknown type, UserNotFoundError when no
        account has this email, AlreadyVerifiedError for a register code on a
        verified account.
        """
        if otp_type not in OTP_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(OTP_TYPES)}")
        user = self.store.find_by_email(email)
        if user is None:
            raise UserNotFoundError()
        if otp_type == OTP_REGISTER and user.is_verified:
            raise AlreadyVerifiedError()
        return self.issue_for_user(user, otp_type)

    def issue_for_user(self, user: User, otp_type: str, welcome: bool = False) -> OtpRecord:
        """Generate, persist and mail a code for an already-loaded user.

        welcome=True sends the greeting used for freshly provisioned accounts.
        """
        now = datetime.now(timezone.utc)
        record = OtpRecord(
            user_id=user.id,
            email=user.email,
            code=generate_code(),
            type=otp_type,
            expires_at=now + timedelta(minutes=self.ttl_minutes),
            created_at=now,
        )
        record.id = self.store.create_otp(record)
        logger.info("Issued %s OTP id=%s for user id=%s", otp_type, record.id, user.id)

        if welcome:
            subject = "Your Billing App - Verify your email"
            body = f"Hello {user.name}, your OTP is {record.code}"
        else:
            subject = "Your Billing App OTP"
            body = f"Your OTP is {record.code}. It expires in {self.ttl_minutes} minutes."
        self.mailer.send(user.email, subject, body)
        return record

    def consume(self, email: str, code: str) -> OtpRecord:
        """Redeem a code. A second attempt with the same code fails like an unknown one."""
        record = self.store.find_valid_otp(email, code)
        if record is None:
            raise InvalidOtpError()
        self.store.mark_otp_used(record.id)
        record.used = True
        if record.type == OTP_REGISTER and record.user_id is not None:
            self.store.verify_user_email(record.user_id)
            logger.info("User id=%s verified via OTP id=%s", record.user_id, record.id)
        return record

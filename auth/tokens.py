"""
auth/tokens.py -- JWT signing/verification, duration parsing, password hashing.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different secrets, so one can never be replayed as the other. Access
       tokens carry id + role; refresh tokens carry id + a random jti so two
       sessions opened in the same second still get distinct tokens (the
       refresh_tokens.token column is UNIQUE).

  verify_access() returns None on any failure -- the auth dependency turns
       that into a 401. verify_refresh() raises a typed error instead, because
       the session manager must react to it (delete the row) before replying.

  Durations: lifetimes are configured as strings like "1h" or "7d".
       parse_duration() is the only place these strings are interpreted. The
       policy is deliberately narrow: one integer, one unit letter from the
       end of the string, no fractions, no "1h30m".

  Passwords: bcrypt directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds and is passed in by the caller.

Settings are injected through the TokenService constructor; this module does
not read configuration at import time.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import TokenExpiredError, TokenSignatureError
from core.config import Settings

logger = logging.getLogger("billingauth.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

DEFAULT_DURATION = timedelta(days=7)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

_UNITS = {
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
}


def parse_duration(value: str | None) -> timedelta:
    """Turn "<integer><unit>" into a timedelta.

    - empty or None      -> 7 days
    - unit is the LAST character: d, h, m or s
    - unknown/no suffix  -> the integer is read as seconds ("90" == "90s")
    - only the leading integer counts: "1.5h" is 1 hour, "2x" is 2 seconds
    - no leading integer -> ValueError
    """
    if not value:
        return DEFAULT_DURATION
    match = _LEADING_INT_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount = int(match.group(1))
    unit = _UNITS.get(value[-1], _UNITS["s"])
    return amount * unit


def compute_expiry_timestamp(value: str | None, now: datetime | None = None) -> datetime:
    """Return the absolute UTC instant `value` from `now` (default: current time)."""
    return (now or datetime.now(timezone.utc)) + parse_duration(value)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of the input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Sign and verify the two kinds of JWT the service hands out.

    Usage:
        tokens = TokenService(get_settings())
        access = tokens.sign_access(user.id, user.role)
        claims = tokens.verify_refresh(refresh)   # raises InvalidTokenError
    """

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self.access_expire = settings.jwt_expire
        self.refresh_expire = settings.jwt_refresh_expire

    def _sign(self, claims: dict, secret: str, expires: str | None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": compute_expiry_timestamp(expires, now),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def sign_access(self, user_id: int, role: str | None, expires: str | None = None) -> str:
        """Encode a signed access token. `expires` overrides JWT_EXPIRE."""
        claims = {"sub": str(user_id), "id": user_id, "role": role}
        return self._sign(claims, self._access_secret, expires or self.access_expire)

    def sign_refresh(self, user_id: int, expires: str | None = None) -> str:
        """Encode a signed refresh token. `expires` overrides JWT_REFRESH_EXPIRE."""
        claims = {"sub": str(user_id), "id": user_id, "jti": uuid.uuid4().hex}
        return self._sign(claims, self._refresh_secret, expires or self.refresh_expire)

    def refresh_expiry(self, now: datetime | None = None) -> datetime:
        """Absolute expiry to store alongside a refresh token issued at `now`."""
        return compute_expiry_timestamp(self.refresh_expire, now)

    def verify_access(self, token: str) -> dict | None:
        """Decode and verify an access token. Returns the claims or None on any failure."""
        try:
            payload = jwt.decode(token, self._access_secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if "id" not in payload:
            return None
        return payload

    def verify_refresh(self, token: str) -> dict:
        """Decode and verify a refresh token.

        Raises TokenExpiredError for an expired token and TokenSignatureError
        for anything else (bad signature, wrong secret, malformed). Both are
        InvalidTokenError.
        """
        try:
            payload = jwt.decode(token, self._refresh_secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTError as exc:
            raise TokenSignatureError() from exc
        if "id" not in payload:
            raise TokenSignatureError()
        return payload

"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own the domain shape; the store maps rows to
them and the services do the work. Each record validates its required fields
on construction so a half-filled row never travels further than the mapper.

All timestamps are timezone-aware UTC datetimes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

ROLE_ADMIN = "Admin"
ROLE_MANAGER = "Manager"
ROLE_USER = "User"

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_USER)
# Admins only come from the first-admin bootstrap, never from the create-user endpoint.
PROVISIONABLE_ROLES = (ROLE_MANAGER, ROLE_USER)

OTP_REGISTER = "register"
OTP_LOGIN = "login"
OTP_FORGOT = "forgot"

OTP_TYPES = (OTP_REGISTER, OTP_LOGIN, OTP_FORGOT)

_OTP_CODE_RE = re.compile(r"^\d{6}$")


@dataclass
class User:
    """An account of the billing application.

    password holds the bcrypt hash, never the plaintext.
    is_verified flips to True when a register-type OTP is consumed, or is set
    up front for accounts created without OTP verification.
    """

    name: str
    email: str
    password: str
    role: str = ROLE_USER
    is_verified: bool = False
    id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.email:
            raise ValueError("User.email is required")
        if not self.name:
            raise ValueError("User.name is required")
        if not self.password:
            raise ValueError("User.password is required")
        if self.role not in ROLES:
            raise ValueError(f"User.role must be one of {ROLES}, got {self.role!r}")


@dataclass
class OtpRecord:
    """A single issued one-time passcode.

    Valid while used is False and expires_at is in the future. Rows are never
    deleted; expiry is purely logical.
    """

    email: str
    code: str
    type: str
    expires_at: datetime
    user_id: int | None = None
    used: bool = False
    id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.email:
            raise ValueError("OtpRecord.email is required")
        if not _OTP_CODE_RE.match(self.code or ""):
            raise ValueError("OtpRecord.code must be exactly 6 digits")
        if self.type not in OTP_TYPES:
            raise ValueError(f"OtpRecord.type must be one of {OTP_TYPES}, got {self.type!r}")


@dataclass
class RefreshToken:
    """Server-side record of an issued refresh token.

    The row's existence is what makes the token usable: deleting it revokes
    the token no matter how long its signature stays valid.
    """

    user_id: int
    token: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("RefreshToken.token is required")

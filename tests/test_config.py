"""Unit tests for core/config.py -- Settings validation."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_production_requires_secrets():
    with pytest.raises(ValidationError, match="JWT_SECRET is required"):
        Settings(debug=False, jwt_secret="", jwt_refresh_secret="b" * 40)


def test_debug_generates_missing_secrets():
    s = Settings(debug=True, jwt_secret="", jwt_refresh_secret="")
    assert len(s.jwt_secret) >= 32
    assert len(s.jwt_refresh_secret) >= 32
    assert s.jwt_secret != s.jwt_refresh_secret


def test_short_secret_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, jwt_secret="short", jwt_refresh_secret="b" * 40)


def test_unknown_email_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(debug=True, email_backend="carrier-pigeon")


def test_defaults():
    s = Settings(debug=True, jwt_secret="a" * 40, jwt_refresh_secret="b" * 40)
    assert s.jwt_expire == "1h"
    assert s.jwt_refresh_expire == "7d"
    assert s.otp_expire_min == 10
    assert s.port == 4000
    assert s.first_admin_configured is False


def test_blank_expiry_falls_back_to_defaults():
    s = Settings(debug=True, jwt_secret="a" * 40, jwt_refresh_secret="b" * 40, jwt_expire="", jwt_refresh_expire=" ")
    assert s.jwt_expire == "1h"
    assert s.jwt_refresh_expire == "7d"

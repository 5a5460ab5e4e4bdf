"""
auth/errors.py -- Domain error taxonomy for the auth services.

Every failure a service can report to a client is an AuthError subclass that
carries the HTTP status and a short machine-readable code. Services raise;
api/main.py has one exception handler that turns any AuthError into the
{message, error} envelope. Anything that is NOT an AuthError (storage down,
SMTP refused) falls through to the generic 500 handler.

The category classes (ValidationError, NotFoundError, ...) fix the default
status for their family; concrete errors pin the client-facing message.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    message = "Invalid request"


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class ConflictError(AuthError):
    status_code = 400
    code = "conflict"
    message = "Conflict"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Access denied - insufficient role"


# ---------------------------------------------------------------------------
# OTP
# ---------------------------------------------------------------------------


class UserNotFoundError(NotFoundError):
    code = "user_not_found"
    message = "User not found. Admin should create user first."


class AlreadyVerifiedError(ConflictError):
    code = "already_verified"
    message = "User already verified"


class InvalidOtpError(ValidationError):
    code = "invalid_otp"
    message = "Invalid or expired OTP"


# ---------------------------------------------------------------------------
# Login / sessions
# ---------------------------------------------------------------------------


class InvalidCredentialsError(ValidationError):
    code = "invalid_credentials"
    message = "Invalid credentials"


class AccountNotFoundError(InvalidCredentialsError):
    # Same message as a bad password, but the status still tells them apart.
    status_code = 404


class EmailNotVerifiedError(ForbiddenError):
    code = "email_not_verified"
    message = "Email not verified. Please verify OTP."


class RefreshTokenRevokedError(UnauthorizedError):
    code = "token_revoked"
    message = "Refresh token not found or already revoked"


class InvalidTokenError(UnauthorizedError):
    code = "invalid_token"
    message = "Invalid refresh token"


class TokenExpiredError(InvalidTokenError):
    code = "token_expired"


class TokenSignatureError(InvalidTokenError):
    code = "invalid_signature"


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


class InvalidRoleError(ValidationError):
    code = "invalid_role"
    message = "Invalid role. Only Manager or User allowed."


class EmailAlreadyRegisteredError(ConflictError):
    code = "email_exists"
    message = "Email already registered"

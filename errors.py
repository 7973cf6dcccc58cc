"""Client-actionable error kinds.

Every error raised by the services is an ``AppError``: a Werkzeug
``HTTPException`` that also carries a stable machine-readable ``error_code``
and optional extra payload fields. The JSON error handler registered in
``app.py`` renders them; anything that is not an ``HTTPException`` becomes a
generic 500.
"""

from __future__ import annotations

from werkzeug.exceptions import HTTPException


class AppError(HTTPException):
    """Base class for expected, client-actionable failures."""

    code = 400
    error_code = "BAD_REQUEST"
    description = "The request could not be processed."

    def __init__(self, description: str | None = None, **extra) -> None:
        super().__init__(description=description)
        self.extra = extra


class EmailAlreadyExists(AppError):
    code = 409
    error_code = "EMAIL_ALREADY_EXISTS"
    description = (
        "We already have a user with this email. Please use a different email "
        "address or try logging in."
    )


class InvalidCredentials(AppError):
    code = 401
    error_code = "INVALID_CREDENTIALS"
    description = "Invalid email or password."


class AccountBlocked(AppError):
    code = 403
    error_code = "ACCOUNT_BLOCKED"
    description = "This account has been blocked. Contact support for assistance."


class NotVerified(AppError):
    code = 403
    error_code = "NOT_VERIFIED"
    description = "Please verify your email address first."


class AlreadyVerified(AppError):
    code = 409
    error_code = "ALREADY_VERIFIED"
    description = "Email is already verified."


class PasswordPolicyViolation(AppError):
    code = 400
    error_code = "PASSWORD_POLICY"
    description = "Password does not meet the requirements."


class TokenError(AppError):
    """Failure to consume a one-time token."""

    code = 400


class TokenInvalid(TokenError):
    error_code = "TOKEN_INVALID"
    description = "Invalid or unknown token."


class TokenExpired(TokenError):
    error_code = "TOKEN_EXPIRED"
    description = "This link has expired. Please request a new one."


class TokenAlreadyUsed(TokenError):
    error_code = "TOKEN_ALREADY_USED"
    description = "This link has already been used."


class TokenPurposeMismatch(TokenError):
    error_code = "TOKEN_PURPOSE_MISMATCH"
    description = "This link cannot be used for this action."


class VerificationFailed(AppError):
    code = 400
    error_code = "VERIFICATION_FAILED"
    description = "Email verification failed."

    def __init__(self, cause: TokenError) -> None:
        super().__init__(cause.description, reason=cause.error_code)
        self.reason = cause.error_code


class InvalidStatusTransition(AppError):
    code = 409
    error_code = "INVALID_STATUS_TRANSITION"
    description = "The requested status change is not allowed."


class Forbidden(AppError):
    code = 403
    error_code = "FORBIDDEN"
    description = "You do not have permission to perform this action."


class Unauthenticated(AppError):
    code = 401
    error_code = "UNAUTHENTICATED"
    description = "A valid session token is required."


class NotFound(AppError):
    code = 404
    error_code = "NOT_FOUND"
    description = "Resource not found."


class TransientError(AppError):
    code = 503
    error_code = "TRANSIENT_ERROR"
    description = "The service is temporarily unavailable. Please retry."

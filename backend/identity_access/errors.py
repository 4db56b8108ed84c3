"""
Authentication/authorization failure taxonomy.

Each error carries the HTTP status class, a stable machine-readable `code`
and a human message. The web adapter renders these verbatim, so messages
must never include token contents or internal details.
"""
from __future__ import annotations


class AuthError(Exception):
    """Base class for pipeline failures that terminate a request."""

    status_code = 401
    code = "unauthenticated"
    message = "Access denied. Please authenticate."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class MissingCredential(AuthError):
    code = "missing_credential"
    message = "Access denied. No token provided."


class InvalidCredential(AuthError):
    code = "invalid_credential"
    message = "Invalid token."


class ExpiredCredential(AuthError):
    code = "expired_credential"
    message = "Token expired. Please login again."


class PrincipalNotFound(InvalidCredential):
    """Token is valid but the account is gone.

    Subclasses InvalidCredential: callers see the same code and
    message as for a bad token, so account existence is not revealed.
    """


class PrincipalSuspended(AuthError):
    status_code = 403
    code = "account_inactive"
    message = "Account is not active. Please contact administrator."


class Unauthenticated(AuthError):
    code = "unauthenticated"
    message = "Access denied. Please authenticate."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Access denied. Insufficient permissions."


__all__ = [
    "AuthError",
    "ExpiredCredential",
    "Forbidden",
    "InvalidCredential",
    "MissingCredential",
    "PrincipalNotFound",
    "PrincipalSuspended",
    "Unauthenticated",
]

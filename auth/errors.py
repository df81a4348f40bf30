"""
auth/errors.py -- Exception hierarchy for the authentication core.

Kinds:
  NotFoundError        no row for the given key
  PasswordTooLongError a new password is longer than bcrypt accepts
  StorageError         query/exec failure other than "not found" (may be transient)
  FatalError           broken environment (random source, corrupt password hash);
                       never retried
  AuthenticationError  a request or login could not be authenticated

Every AuthenticationError carries a stable machine-readable `code` and a
generic `message`. The message is safe to return to clients; it never contains
driver errors, token values or email addresses. Operators get the detail from
the log, not from the exception text.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by auth/."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class NotFoundError(AuthError):
    pass


class StorageError(AuthError):
    pass


class DuplicateEmailError(StorageError):
    """Raised by UserStore.create_user() when the email is already registered."""


class PasswordTooLongError(AuthError):
    """A new password exceeds the 72 bytes bcrypt can hash."""


# ---------------------------------------------------------------------------
# Fatal
# ---------------------------------------------------------------------------


class FatalError(AuthError):
    pass


class RandomSourceError(FatalError):
    pass


class PasswordHashError(FatalError):
    """The stored password hash could not be parsed by bcrypt."""


# ---------------------------------------------------------------------------
# Authentication failures
# ---------------------------------------------------------------------------


class AuthenticationError(AuthError):
    code = "unauthorized"
    message = "Authentication required."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MalformedHeaderError(AuthenticationError):
    code = "malformed_header"
    message = "Invalid authorization header."


class InvalidTokenLengthError(AuthenticationError):
    code = "invalid_token_length"
    message = "Invalid authentication token."


class TokenNotFoundError(AuthenticationError):
    code = "token_not_found"
    message = "No matching token found."


class TokenExpiredError(AuthenticationError):
    code = "token_expired"
    message = "Token expired."


class UserNotFoundError(AuthenticationError):
    code = "user_not_found"
    message = "No matching user found."


class InvalidCredentialsError(AuthenticationError):
    code = "bad_credentials"
    message = "Invalid email or password."

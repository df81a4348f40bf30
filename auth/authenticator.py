"""
auth/authenticator.py -- Login, logout and bearer-token request authentication.

Authenticator ties the credential store, the token issuer and the token store
together:

  login()                 email + password -> new Token persisted in TokenStore
  authenticate_request()  "Bearer <token>" header value -> User
  logout()                "Bearer <token>" header value -> token row deleted

authenticate_request() runs its checks in a fixed order and stops at the first
failure:

  1. header is exactly "Bearer <token>"    else MalformedHeaderError
  2. token is 26 characters                else InvalidTokenLengthError
  3. token row exists                      else TokenNotFoundError
  4. expiry is strictly after now          else TokenExpiredError
  5. owning user exists                    else UserNotFoundError

Expiry is evaluated lazily: an expired row is reported, not deleted. Storage
failures during steps 3 and 5 are logged and surface as the same generic
"not found" errors so driver messages never reach the caller.

Layer rule: no imports from api/. FastAPI glue lives in auth/dependencies.py.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import (
    InvalidCredentialsError,
    InvalidTokenLengthError,
    MalformedHeaderError,
    TokenExpiredError,
    TokenNotFoundError,
    UserNotFoundError,
)
from auth.models import LookupOutcome, Token, User
from auth.store import TokenStore, UserStore
from auth.tokens import TOKEN_LENGTH, generate_token, utcnow

logger = logging.getLogger("tokenauth.auth")

BEARER_SCHEME = "Bearer"


def parse_bearer_header(header_value: str | None) -> str:
    """Return the token literal from an Authorization header value.

    Only the exact shape "Bearer <token>" is accepted: one single space, case-
    sensitive scheme, no extra fields.
    """
    if not header_value:
        raise MalformedHeaderError()
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME:
        raise MalformedHeaderError()
    token = parts[1]
    if len(token) != TOKEN_LENGTH:
        raise InvalidTokenLengthError()
    return token


class Authenticator:
    """Session lifecycle on top of UserStore and TokenStore.

    clock is injectable so expiry can be tested without sleeping; it must
    return timezone-aware UTC datetimes.
    """

    def __init__(
        self,
        users: UserStore,
        tokens: TokenStore,
        token_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.token_ttl = token_ttl
        self.clock = clock

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, ttl: timedelta | None = None) -> Token:
        """Verify the password and issue a persisted token.

        Wrong email and wrong password raise the same InvalidCredentialsError.
        Storage and fatal errors propagate unchanged.
        """
        user = self.users.authenticate(email, password)
        if user is None:
            logger.info("Login failed")
            raise InvalidCredentialsError()

        token = generate_token(user.id, ttl or self.token_ttl, email=user.email, now=self.clock())
        token.id = self.tokens.insert_token(token)
        logger.info("Issued token for user %s (expires %s)", user.id, token.expiry.isoformat())
        return token

    def logout(self, header_value: str | None) -> bool:
        """Revoke the token presented in header_value.

        Idempotent: logging out with an unknown or already revoked token is not
        an error. Returns True if a row was removed.
        """
        plaintext = parse_bearer_header(header_value)
        return self.tokens.delete_token(plaintext) > 0

    # ------------------------------------------------------------------
    # Request authentication
    # ------------------------------------------------------------------

    def authenticate_request(self, header_value: str | None) -> User:
        """Resolve an Authorization header value to its User or raise AuthenticationError."""
        plaintext = parse_bearer_header(header_value)
        return self.user_for_token(plaintext)

    def user_for_token(self, plaintext: str) -> User:
        """Run checks 3-5 of authenticate_request() against a bare token literal."""
        lookup = self.tokens.lookup_by_token(plaintext)
        if lookup.outcome is LookupOutcome.STORAGE_ERROR:
            logger.warning("Token lookup failed during authentication: %s", lookup.detail)
        if not lookup.is_found:
            raise TokenNotFoundError()
        token = lookup.unwrap()

        if token.expiry <= self.clock():
            raise TokenExpiredError()

        user_lookup = self.users.lookup_by_id(token.user_id)
        if user_lookup.outcome is LookupOutcome.STORAGE_ERROR:
            logger.warning("User lookup failed for token owner %s: %s", token.user_id, user_lookup.detail)
        if not user_lookup.is_found:
            raise UserNotFoundError()
        return user_lookup.unwrap()

    def validate_token(self, plaintext: str) -> bool:
        """True if plaintext is a well-sized, stored, unexpired token of an existing user."""
        if len(plaintext) != TOKEN_LENGTH:
            return False
        try:
            self.user_for_token(plaintext)
        except (TokenNotFoundError, TokenExpiredError, UserNotFoundError):
            return False
        return True

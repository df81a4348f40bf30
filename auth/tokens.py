"""
auth/tokens.py -- Password hashing and bearer token issuance.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper) with a fixed cost
       factor taken from Settings.bcrypt_rounds (default 12). Mismatch is a
       plain False; a hash bcrypt cannot parse is a PasswordHashError so a
       corrupt row is never mistaken for a wrong password.

  Tokens: secrets.token_bytes(16) gives 128 bits of entropy, encoded as
       unpadded base32 (26 chars, A-Z and 2-7) so the value survives headers,
       URLs and copy/paste. The SHA-256 hex digest is stored next to it. A
       failing random source raises RandomSourceError and is never retried.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt

from auth.errors import PasswordHashError, PasswordTooLongError, RandomSourceError
from auth.models import Token

logger = logging.getLogger("tokenauth.auth")

TOKEN_BYTES = 16
TOKEN_LENGTH = 26

# bcrypt ignores (4.x) or rejects (5.x) input past this many bytes.
MAX_PASSWORD_BYTES = 72

DEFAULT_BCRYPT_ROUNDS = 12


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises PasswordTooLongError for passwords over MAX_PASSWORD_BYTES encoded
    as UTF-8, rather than letting bcrypt truncate or reject them.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError(f"password is longer than {MAX_PASSWORD_BYTES} bytes")
    try:
        salt = bcrypt.gensalt(rounds=rounds)
    except (OSError, NotImplementedError) as exc:
        logger.error("Random source unavailable while salting password: %s", exc)
        raise RandomSourceError("random source unavailable") from exc
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A candidate over MAX_PASSWORD_BYTES never matches: hash_password() refuses
    such input, so no stored hash was made from it. Raises PasswordHashError
    when the stored hash is empty or malformed.
    """
    if not hashed:
        raise PasswordHashError("password hash is empty")
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as exc:
        logger.error("Stored password hash could not be verified: %s", exc)
        raise PasswordHashError("password hash is corrupt") from exc


# Timing equalization dummy hashes, one per cost factor, computed on first use.
# UserStore.authenticate() always runs bcrypt, even for unknown emails, so
# response time does not reveal which emails are registered.
_dummy_hashes: dict[int, str] = {}


def dummy_hash(rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = hash_password("tokenauth_timing_dummy", rounds)
    return _dummy_hashes[rounds]


# ---------------------------------------------------------------------------
# Token issuance
# ---------------------------------------------------------------------------


def hash_token(plaintext: str) -> str:
    """Return the SHA-256 hex digest (64 chars) of a token's plaintext."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def generate_token(user_id: int, ttl: timedelta, email: str = "", now: datetime | None = None) -> Token:
    """Mint a new, unsaved Token for user_id that expires ttl after now."""
    try:
        raw = secrets.token_bytes(TOKEN_BYTES)
    except (OSError, NotImplementedError) as exc:
        logger.error("Random source unavailable while generating token: %s", exc)
        raise RandomSourceError("random source unavailable") from exc

    plaintext = base64.b32encode(raw).decode("ascii").rstrip("=")
    issued_at = now or utcnow()
    return Token(
        user_id=user_id,
        email=email,
        token=plaintext,
        token_hash=hash_token(plaintext),
        expiry=issued_at + ttl,
    )

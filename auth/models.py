"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost no logic). Dataclasses own
domain shape; stores and the authenticator do the work.

LookupResult is the one exception that carries behaviour: single-row reads
return it so callers branch on the outcome (found / not found / storage error)
instead of comparing against sentinel errors.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from auth.errors import NotFoundError, StorageError

T = TypeVar("T")


@dataclass
class User:
    """A local account that can log in with email + password.

    password_hash is the bcrypt string written by UserStore.create_user() or
    reset_password(). It is never set from clear text by callers; an empty
    value only exists on a User that has not been inserted yet.
    """

    email: str
    first_name: str = ""
    last_name: str = ""
    id: int | None = None
    password_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Token:
    """An opaque bearer credential issued at login.

    - token is 26 characters of unpadded base32 (128 random bits).
    - token_hash is the SHA-256 hex digest of token. Lookups key on the
      plaintext column; the digest is written alongside it and is not read
      back by any lookup.
    - email is a snapshot taken at issuance; it does not follow later email
      changes on the user.
    - expiry is absolute (UTC). Expired rows stay in the table until something
      deletes them.
    """

    user_id: int
    token: str
    token_hash: str
    expiry: datetime
    email: str = ""
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LookupOutcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Tagged result of a single-row read."""

    outcome: LookupOutcome
    value: T | None = None
    detail: str = ""

    @classmethod
    def found(cls, value: T) -> LookupResult[T]:
        return cls(LookupOutcome.FOUND, value=value)

    @classmethod
    def not_found(cls, detail: str = "") -> LookupResult[T]:
        return cls(LookupOutcome.NOT_FOUND, detail=detail)

    @classmethod
    def storage_error(cls, detail: str) -> LookupResult[T]:
        return cls(LookupOutcome.STORAGE_ERROR, detail=detail)

    @property
    def is_found(self) -> bool:
        return self.outcome is LookupOutcome.FOUND

    def unwrap(self) -> T:
        """Return the value or raise the matching store exception."""
        if self.outcome is LookupOutcome.FOUND:
            return self.value  # type: ignore[return-value]
        if self.outcome is LookupOutcome.NOT_FOUND:
            raise NotFoundError(self.detail or "record not found")
        raise StorageError(self.detail or "storage failure")

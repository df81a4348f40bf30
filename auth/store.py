"""
auth/store.py -- SQLAlchemy Core persistence layer for users and tokens.

Pattern: Repository + Data Mapper. UserStore (credential store) and TokenStore
are the repositories; _row_to_user / _row_to_token are the mappers. Route and
dependency code never touches SQL directly.

Both repositories receive the Engine they use at construction. There is no
module-level connection handle: the application (api/main.py lifespan or the
CLI) builds one engine with create_db_engine() and shares it.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Password hashes are written only by create_user() and reset_password().

Timeouts:
  create_db_engine() bounds every operation by one fixed timeout: the SQLite
  busy timeout, or PostgreSQL statement_timeout/connect_timeout plus the pool
  checkout timeout. Callers cannot override it per call.

Timestamps:
  Stored as fixed-width ISO 8601 UTC strings (microsecond precision) so that
  string comparison in SQL matches chronological order (purge_expired()).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmailError, StorageError
from auth.models import LookupOutcome, LookupResult, Token, User
from auth.tokens import DEFAULT_BCRYPT_ROUNDS, dummy_hash, hash_password, verify_password

logger = logging.getLogger("tokenauth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("password", String(60), nullable=False),  # bcrypt hash, never clear text
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tokens = Table(
    "tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # No ON DELETE CASCADE: token rows are removed explicitly, never with the user.
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("email", String(255), nullable=False, server_default=""),
    Column("token", String(26), nullable=False, unique=True),
    Column("token_hash", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("expiry", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str, timeout_seconds: float = 3.0) -> Engine:
    """Build the pooled datastore handle shared by UserStore and TokenStore."""
    connect_args: dict = {}
    engine_kwargs: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_seconds
    else:
        engine_kwargs["pool_timeout"] = timeout_seconds
        engine_kwargs["pool_pre_ping"] = True
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout_seconds))
            connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"
    engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_schema(engine: Engine) -> None:
    """Create the users and tokens tables if they do not exist."""
    metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and their password hashes.

    Usage:
        engine = create_db_engine("sqlite:///tokenauth.db")
        init_schema(engine)
        users = UserStore(engine)
        user_id = users.create_user(User(email="a@example.com"), "s3cret-pass")
        user = users.get_by_email("a@example.com")
        users.password_matches(user, "s3cret-pass")  # True
    """

    def __init__(
        self,
        engine: Engine,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
        retry_attempts: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        self.engine = engine
        self.bcrypt_rounds = bcrypt_rounds
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        except SQLAlchemyError as exc:
            logger.warning("Failed to list users: %s", exc)
            raise StorageError("failed to list users") from exc
        return [_row_to_user(r) for r in rows]

    def lookup_by_email(self, email: str) -> LookupResult[User]:
        """Look up a user by exact email (case-sensitive)."""
        return self._lookup(_users.c.email == email)

    def lookup_by_id(self, user_id: int) -> LookupResult[User]:
        return self._lookup(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User:
        """Return the user with this email. Raises NotFoundError or StorageError."""
        return self.lookup_by_email(email).unwrap()

    def get_by_id(self, user_id: int) -> User:
        """Return the user with this id. Raises NotFoundError or StorageError."""
        return self.lookup_by_id(user_id).unwrap()

    def _lookup(self, clause) -> LookupResult[User]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(clause)).fetchone()
        except SQLAlchemyError as exc:
            logger.warning("User lookup failed: %s", exc)
            return LookupResult.storage_error("user lookup failed")
        if row is None:
            return LookupResult.not_found("user not found")
        return LookupResult.found(_row_to_user(row))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str) -> int:
        """Hash password, insert the user and return its assigned database ID.

        Transient storage failures are retried retry_attempts times with a
        fixed retry_delay sleep in between; the caller blocks for the whole
        backoff. A duplicate email raises DuplicateEmailError straight away.
        """
        hashed = hash_password(password, self.bcrypt_rounds)
        now = _now_iso()
        values = {
            "email": user.email,
            "first_name": user.first_name or "",
            "last_name": user.last_name or "",
            "password": hashed,
            "created_at": now,
            "updated_at": now,
        }

        last_exc: Exception | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(_users.insert().values(**values))
                    return result.inserted_primary_key[0]
            except IntegrityError as exc:
                logger.info("User insert rejected, email already registered")
                raise DuplicateEmailError("email already registered") from exc
            except SQLAlchemyError as exc:
                last_exc = exc
                logger.warning("Failed to insert user, attempt %d/%d: %s", attempt, self.retry_attempts, exc)
                if attempt < self.retry_attempts:
                    time.sleep(self.retry_delay)
        raise StorageError(f"failed to insert user after {self.retry_attempts} attempts") from last_exc

    def update_user(self, user: User) -> bool:
        """Overwrite email, first/last name and updated_at. Never touches the password.

        Returns True if a row was updated, False if user.id was not found.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user.id)
                    .values(
                        email=user.email,
                        first_name=user.first_name or "",
                        last_name=user.last_name or "",
                        updated_at=_now_iso(),
                    )
                )
        except IntegrityError as exc:
            raise DuplicateEmailError("email already registered") from exc
        except SQLAlchemyError as exc:
            logger.warning("Failed to update user %s: %s", user.id, exc)
            raise StorageError("failed to update user") from exc
        return result.rowcount > 0

    def reset_password(self, user_id: int, new_password: str) -> bool:
        """Store a fresh bcrypt hash for user_id. Returns False if the user does not exist."""
        hashed = hash_password(new_password, self.bcrypt_rounds)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update().where(_users.c.id == user_id).values(password=hashed, updated_at=_now_iso())
                )
        except SQLAlchemyError as exc:
            logger.warning("Failed to reset password for user %s: %s", user_id, exc)
            raise StorageError("failed to reset password") from exc
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> None:
        """Permanently delete a user record.

        A delete that matches no row raises StorageError: without a prior read
        the store cannot tell "already gone" from "never existed". Token rows
        are not cascaded, so deleting a user who still has tokens fails on the
        foreign key and raises StorageError as well.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.delete().where(_users.c.id == user_id))
        except SQLAlchemyError as exc:
            logger.warning("Failed to delete user %s: %s", user_id, exc)
            raise StorageError("failed to delete user") from exc
        if result.rowcount == 0:
            logger.warning("Delete of user %s affected no rows", user_id)
            raise StorageError("failed to delete user: no matching row")

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def password_matches(self, user: User, candidate: str) -> bool:
        """True if candidate matches the stored hash. Corrupt hashes raise PasswordHashError."""
        return verify_password(candidate, user.password_hash)

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the user for a correct email/password pair, otherwise None.

        Always runs bcrypt whether or not the email exists, so an unknown
        email costs the same as a wrong password.
        """
        lookup = self.lookup_by_email(email)
        if not lookup.is_found:
            verify_password(password, dummy_hash(self.bcrypt_rounds))
            if lookup.outcome is LookupOutcome.STORAGE_ERROR:
                raise StorageError("user lookup failed")
            return None
        user = lookup.unwrap()
        if not self.password_matches(user, password):
            return None
        return user


# ---------------------------------------------------------------------------
# Token store
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for bearer Token records.

    single_session_per_user selects the replacement policy used by
    insert_token(): False keeps every session a user opens; True deletes the
    user's previous tokens before the new one is written.
    """

    def __init__(self, engine: Engine, single_session_per_user: bool = False) -> None:
        self.engine = engine
        self.single_session_per_user = single_session_per_user

    def insert_token(self, token: Token) -> int:
        """Persist token and return its ID.

        The replacement delete and the insert run in one transaction, so a
        failure leaves either the old rows or the new row, never half of each.
        created_at/updated_at are assigned here; values on token are ignored.
        """
        now = _now_iso()
        if self.single_session_per_user:
            replaced = _tokens.c.user_id == token.user_id
        else:
            replaced = _tokens.c.token == token.token
        try:
            with self.engine.begin() as conn:
                conn.execute(_tokens.delete().where(replaced))
                result = conn.execute(
                    _tokens.insert().values(
                        user_id=token.user_id,
                        email=token.email or "",
                        token=token.token,
                        token_hash=token.token_hash,
                        created_at=now,
                        updated_at=now,
                        expiry=_to_iso(token.expiry),
                    )
                )
                return result.inserted_primary_key[0]
        except SQLAlchemyError as exc:
            logger.warning("Failed to insert token for user %s: %s", token.user_id, exc)
            raise StorageError("failed to insert token") from exc

    def lookup_by_token(self, plaintext: str) -> LookupResult[Token]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_tokens.select().where(_tokens.c.token == plaintext)).fetchone()
        except SQLAlchemyError as exc:
            logger.warning("Token lookup failed: %s", exc)
            return LookupResult.storage_error("token lookup failed")
        if row is None:
            return LookupResult.not_found("token not found")
        return LookupResult.found(_row_to_token(row))

    def get_by_token(self, plaintext: str) -> Token:
        """Return the token row for plaintext. Raises NotFoundError or StorageError."""
        return self.lookup_by_token(plaintext).unwrap()

    def delete_token(self, plaintext: str) -> int:
        """Delete the token with this plaintext. Deleting a missing token is not an error."""
        return self._delete(_tokens.c.token == plaintext, "token")

    def delete_tokens_for_user(self, user_id: int) -> int:
        """Revoke every token owned by user_id. Returns the number of rows removed."""
        return self._delete(_tokens.c.user_id == user_id, f"tokens of user {user_id}")

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete all tokens whose expiry is before now. Returns number of rows removed.

        Nothing calls this on a timer; run it from the CLI (purge-tokens) or
        another explicit job.
        """
        cutoff = _to_iso(now or datetime.now(timezone.utc))
        removed = self._delete(_tokens.c.expiry < cutoff, "expired tokens")
        logger.info("Purged %d expired tokens", removed)
        return removed

    def _delete(self, clause, what: str) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_tokens.delete().where(clause))
        except SQLAlchemyError as exc:
            logger.warning("Failed to delete %s: %s", what, exc)
            raise StorageError("failed to delete token") from exc
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        password_hash=row.password,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )


def _row_to_token(row) -> Token:
    return Token(
        id=row.id,
        user_id=row.user_id,
        email=row.email or "",
        token=row.token,
        token_hash=row.token_hash,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        expiry=_from_iso(row.expiry),
    )

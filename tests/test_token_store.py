"""Unit tests for auth/store.py TokenStore.

Covers:
- insert_token() / get_by_token() round trip with server-assigned timestamps
- idempotent delete_token()
- replacement policy: multi-session (default) vs single_session_per_user
- expired rows persist until purge_expired() removes them
- foreign key and lookup failure paths
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import NotFoundError, StorageError
from auth.models import LookupOutcome, User
from auth.store import TokenStore
from auth.tokens import generate_token


class TestInsertAndGet:
    def test_round_trip(self, tokens: TokenStore, alice: User) -> None:
        issued = generate_token(alice.id, timedelta(hours=24), email=alice.email)
        token_id = tokens.insert_token(issued)

        stored = tokens.get_by_token(issued.token)
        assert stored.id == token_id
        assert stored.user_id == alice.id
        assert stored.expiry == issued.expiry
        assert stored.email == alice.email
        assert stored.token_hash == issued.token_hash

    def test_caller_timestamps_ignored(self, tokens: TokenStore, alice: User) -> None:
        issued = generate_token(alice.id, timedelta(hours=1))
        ancient = datetime(2001, 1, 1, tzinfo=timezone.utc)
        issued.created_at = ancient
        issued.updated_at = ancient
        tokens.insert_token(issued)

        stored = tokens.get_by_token(issued.token)
        assert stored.created_at > ancient
        assert stored.updated_at == stored.created_at

    def test_unknown_token_not_found(self, tokens: TokenStore) -> None:
        with pytest.raises(NotFoundError):
            tokens.get_by_token("A" * 26)
        assert tokens.lookup_by_token("A" * 26).outcome is LookupOutcome.NOT_FOUND

    def test_reinserting_same_value_replaces_row(self, tokens: TokenStore, alice: User) -> None:
        issued = generate_token(alice.id, timedelta(hours=1))
        tokens.insert_token(issued)
        issued.expiry = issued.expiry + timedelta(hours=5)
        tokens.insert_token(issued)

        assert tokens.get_by_token(issued.token).expiry == issued.expiry

    def test_unknown_user_rejected(self, tokens: TokenStore) -> None:
        with pytest.raises(StorageError):
            tokens.insert_token(generate_token(31337, timedelta(hours=1)))


class TestDelete:
    def test_delete_twice_is_not_an_error(self, tokens: TokenStore, alice: User) -> None:
        issued = generate_token(alice.id, timedelta(hours=1))
        tokens.insert_token(issued)

        assert tokens.delete_token(issued.token) == 1
        assert tokens.delete_token(issued.token) == 0
        with pytest.raises(NotFoundError):
            tokens.get_by_token(issued.token)

    def test_delete_tokens_for_user(self, tokens: TokenStore, alice: User) -> None:
        for _ in range(3):
            tokens.insert_token(generate_token(alice.id, timedelta(hours=1)))
        assert tokens.delete_tokens_for_user(alice.id) == 3
        assert tokens.delete_tokens_for_user(alice.id) == 0


class TestReplacementPolicy:
    def test_sessions_accumulate_by_default(self, tokens: TokenStore, alice: User) -> None:
        first = generate_token(alice.id, timedelta(hours=1))
        second = generate_token(alice.id, timedelta(hours=1))
        tokens.insert_token(first)
        tokens.insert_token(second)

        assert tokens.get_by_token(first.token).user_id == alice.id
        assert tokens.get_by_token(second.token).user_id == alice.id

    def test_single_session_revokes_previous(self, engine, users, alice: User) -> None:
        store = TokenStore(engine, single_session_per_user=True)
        first = generate_token(alice.id, timedelta(hours=1))
        second = generate_token(alice.id, timedelta(hours=1))
        store.insert_token(first)
        store.insert_token(second)

        with pytest.raises(NotFoundError):
            store.get_by_token(first.token)
        assert store.get_by_token(second.token).user_id == alice.id

    def test_single_session_leaves_other_users_alone(self, engine, users, alice: User) -> None:
        users.create_user(User(email="bob@example.com"), "pw")
        bob = users.get_by_email("bob@example.com")
        store = TokenStore(engine, single_session_per_user=True)
        bobs = generate_token(bob.id, timedelta(hours=1))
        store.insert_token(bobs)
        store.insert_token(generate_token(alice.id, timedelta(hours=1)))

        assert store.get_by_token(bobs.token).user_id == bob.id

    def test_failed_insert_keeps_previous_session(self, engine, users, alice: User) -> None:
        store = TokenStore(engine, single_session_per_user=True)
        first = generate_token(alice.id, timedelta(hours=1))
        store.insert_token(first)

        # The insert collides with bob's UNIQUE token value, so the delete of
        # alice's previous token must roll back with it.
        users.create_user(User(email="bob@example.com"), "pw")
        bob = users.get_by_email("bob@example.com")
        bobs = generate_token(bob.id, timedelta(hours=1))
        store.insert_token(bobs)
        clash = generate_token(alice.id, timedelta(hours=1))
        clash.token = bobs.token

        with pytest.raises(StorageError):
            store.insert_token(clash)
        assert store.get_by_token(first.token).user_id == alice.id


class TestExpiry:
    def test_expired_rows_persist(self, tokens: TokenStore, alice: User) -> None:
        past = datetime.now(timezone.utc) - timedelta(days=2)
        expired = generate_token(alice.id, timedelta(hours=1), now=past)
        tokens.insert_token(expired)

        assert tokens.get_by_token(expired.token).expiry < datetime.now(timezone.utc)

    def test_purge_expired_only_removes_expired(self, tokens: TokenStore, alice: User) -> None:
        now = datetime.now(timezone.utc)
        expired = generate_token(alice.id, timedelta(hours=1), now=now - timedelta(hours=2))
        live = generate_token(alice.id, timedelta(hours=1), now=now)
        tokens.insert_token(expired)
        tokens.insert_token(live)

        assert tokens.purge_expired(now) == 1
        with pytest.raises(NotFoundError):
            tokens.get_by_token(expired.token)
        assert tokens.get_by_token(live.token).user_id == alice.id

    def test_purge_compares_across_microseconds(self, tokens: TokenStore, alice: User) -> None:
        cutoff = datetime(2030, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        just_before = generate_token(alice.id, timedelta(0), now=cutoff - timedelta(microseconds=1))
        exactly = generate_token(alice.id, timedelta(0), now=cutoff)
        tokens.insert_token(just_before)
        tokens.insert_token(exactly)

        assert tokens.purge_expired(cutoff) == 1
        assert tokens.get_by_token(exactly.token).expiry == cutoff

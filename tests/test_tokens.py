"""Unit tests for auth/tokens.py -- password hashing and token issuance.

Covers:
- generate_token() shape: 26 chars of unpadded base32, SHA-256 digest, expiry
- generate_token() randomness (no repeats over a batch)
- a failing random source raises RandomSourceError
- hash_password() / verify_password() match, mismatch and corrupt-hash paths
- the 72-byte bcrypt limit: refused when hashing, a plain mismatch when verifying
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import FatalError, PasswordHashError, PasswordTooLongError, RandomSourceError
from auth.tokens import (
    MAX_PASSWORD_BYTES,
    TOKEN_LENGTH,
    generate_token,
    hash_password,
    hash_token,
    verify_password,
)

BASE32_ALPHABET = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")


class TestGenerateToken:
    def test_token_is_26_chars_of_unpadded_base32(self) -> None:
        for _ in range(50):
            token = generate_token(1, timedelta(hours=1))
            assert len(token.token) == TOKEN_LENGTH == 26
            assert set(token.token) <= BASE32_ALPHABET
            assert "=" not in token.token

    def test_token_hash_is_sha256_of_plaintext(self) -> None:
        token = generate_token(1, timedelta(hours=1))
        assert token.token_hash == hashlib.sha256(token.token.encode()).hexdigest()
        assert token.token_hash == hash_token(token.token)
        assert len(token.token_hash) == 64

    def test_expiry_is_now_plus_ttl(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        token = generate_token(7, timedelta(hours=24), email="a@example.com", now=now)
        assert token.expiry == now + timedelta(hours=24)
        assert token.user_id == 7
        assert token.email == "a@example.com"
        assert token.id is None

    def test_expiry_defaults_to_current_time(self) -> None:
        before = datetime.now(timezone.utc)
        token = generate_token(1, timedelta(minutes=5))
        after = datetime.now(timezone.utc)
        assert before + timedelta(minutes=5) <= token.expiry <= after + timedelta(minutes=5)

    def test_tokens_do_not_repeat(self) -> None:
        values = {generate_token(1, timedelta(hours=1)).token for _ in range(500)}
        assert len(values) == 500

    def test_random_source_failure_is_fatal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(_n: int) -> bytes:
            raise OSError("getrandom failed")

        monkeypatch.setattr("auth.tokens.secrets.token_bytes", broken)
        with pytest.raises(RandomSourceError) as exc_info:
            generate_token(1, timedelta(hours=1))
        assert isinstance(exc_info.value, FatalError)


class TestPasswordHashing:
    def test_hash_is_bcrypt_not_clear_text(self) -> None:
        hashed = hash_password("s3cret-pass", rounds=4)
        assert hashed != "s3cret-pass"
        assert hashed.startswith("$2")

    def test_same_password_hashes_differently(self) -> None:
        assert hash_password("s3cret-pass", rounds=4) != hash_password("s3cret-pass", rounds=4)

    def test_verify_match_and_mismatch(self) -> None:
        hashed = hash_password("s3cret-pass", rounds=4)
        assert verify_password("s3cret-pass", hashed) is True
        assert verify_password("s3cret-passx", hashed) is False

    def test_corrupt_hash_raises(self) -> None:
        with pytest.raises(PasswordHashError):
            verify_password("anything", "not-a-bcrypt-hash")

    def test_empty_hash_raises(self) -> None:
        with pytest.raises(PasswordHashError):
            verify_password("anything", "")

    def test_password_over_72_bytes_is_refused(self) -> None:
        with pytest.raises(PasswordTooLongError):
            hash_password("a" * 73, rounds=4)
        with pytest.raises(PasswordTooLongError):
            hash_password("é" * 37, rounds=4)  # 74 bytes, 37 characters

    def test_72_bytes_is_accepted(self) -> None:
        hashed = hash_password("é" * 36, rounds=4)
        assert verify_password("é" * 36, hashed) is True

    def test_candidate_past_72_bytes_never_matches(self) -> None:
        password = "a" * MAX_PASSWORD_BYTES
        hashed = hash_password(password, rounds=4)
        assert verify_password(password, hashed) is True
        assert verify_password(password + "x", hashed) is False
        assert verify_password("é" * 40, hashed) is False

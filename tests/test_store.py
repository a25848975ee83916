"""Unit tests for auth/store.py -- user and reset-token persistence.

Covers:
- create/get round trip and email uniqueness (IntegrityError from the index)
- update_name() and list_users() ordering/limit
- create_reset_token() supersedes outstanding tokens for the same email
- redeem_reset_token() outcomes: redeemed, not found, expired, consumed
- redemption rolls back when the owning user no longer matches
- purge_expired_reset_tokens()
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import ResetToken, User
from auth.store import (
    REDEEMED,
    TOKEN_CONSUMED,
    TOKEN_EXPIRED,
    TOKEN_NOT_FOUND,
    UserStore,
    UserVanishedError,
)

NOW = 1_800_000_000.0


def _user(email: str = "a@x.com", name: str = "A") -> User:
    return User(name=name, email=email, password_hash="$2b$04$notarealhashbutopaque")


class TestUsers:
    def test_create_and_fetch(self, store: UserStore) -> None:
        uid = store.create_user(_user())
        by_id = store.get_by_id(uid)
        by_email = store.get_by_email("a@x.com")
        assert by_id is not None and by_email is not None
        assert by_id.id == by_email.id == uid
        assert by_id.name == "A"
        assert by_id.created_at

    def test_missing_user_returns_none(self, store: UserStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@x.com") is None

    def test_duplicate_email_raises_integrity_error(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(IntegrityError):
            store.create_user(_user(name="B"))

    def test_update_name(self, store: UserStore) -> None:
        uid = store.create_user(_user())
        updated = store.update_name(uid, "Alice")
        assert updated is not None
        assert updated.name == "Alice"
        assert store.get_by_id(uid).name == "Alice"

    def test_update_name_unknown_user(self, store: UserStore) -> None:
        assert store.update_name(12345, "Ghost") is None

    def test_list_users_newest_first_with_limit(self, store: UserStore) -> None:
        for i in range(3):
            store.create_user(_user(email=f"u{i}@x.com", name=f"U{i}"))
        users = store.list_users(limit=2)
        assert len(users) == 2
        assert users[0].email == "u2@x.com"

    def test_ping(self, store: UserStore) -> None:
        assert store.ping() is True


class TestResetTokens:
    @pytest.fixture
    def owner_id(self, store: UserStore) -> int:
        return store.create_user(_user())

    def _issue(self, store: UserStore, token_hash: str = "h1", expires_at: float = NOW + 600) -> None:
        store.create_reset_token(ResetToken(token_hash=token_hash, email="a@x.com", expires_at=expires_at))

    def test_redeem_consumes_and_sets_password(self, store: UserStore, owner_id: int) -> None:
        self._issue(store)
        assert store.redeem_reset_token("h1", "new-hash", NOW) == REDEEMED
        assert store.get_by_id(owner_id).password_hash == "new-hash"
        assert store.get_reset_token("h1").consumed is True

    def test_second_redeem_reports_consumed(self, store: UserStore, owner_id: int) -> None:
        self._issue(store)
        store.redeem_reset_token("h1", "first", NOW)
        assert store.redeem_reset_token("h1", "second", NOW) == TOKEN_CONSUMED
        assert store.get_by_id(owner_id).password_hash == "first"

    def test_unknown_token(self, store: UserStore, owner_id: int) -> None:
        assert store.redeem_reset_token("nope", "x", NOW) == TOKEN_NOT_FOUND

    def test_expired_token_is_not_consumed(self, store: UserStore, owner_id: int) -> None:
        self._issue(store, expires_at=NOW)
        assert store.redeem_reset_token("h1", "x", NOW) == TOKEN_EXPIRED
        assert store.get_reset_token("h1").consumed is False
        assert store.get_by_id(owner_id).password_hash != "x"

    def test_new_token_supersedes_outstanding_one(self, store: UserStore, owner_id: int) -> None:
        self._issue(store, token_hash="old")
        self._issue(store, token_hash="new")
        assert store.get_reset_token("old") is None
        assert store.count_reset_tokens("a@x.com") == 1
        assert store.redeem_reset_token("old", "x", NOW) == TOKEN_NOT_FOUND
        assert store.redeem_reset_token("new", "x", NOW) == REDEEMED

    def test_consumed_tokens_survive_supersede(self, store: UserStore, owner_id: int) -> None:
        """Only unconsumed tokens are removed; a used token stays 'already used'."""
        self._issue(store, token_hash="used")
        store.redeem_reset_token("used", "x", NOW)
        self._issue(store, token_hash="fresh")
        assert store.redeem_reset_token("used", "y", NOW) == TOKEN_CONSUMED

    def test_redeem_rolls_back_when_user_missing(self, store: UserStore) -> None:
        store.create_reset_token(ResetToken(token_hash="orphan", email="ghost@x.com", expires_at=NOW + 600))
        with pytest.raises(UserVanishedError):
            store.redeem_reset_token("orphan", "x", NOW)
        assert store.get_reset_token("orphan").consumed is False

    def test_purge_expired(self, store: UserStore, owner_id: int) -> None:
        self._issue(store, token_hash="stale", expires_at=NOW - 1)
        store.create_reset_token(ResetToken(token_hash="other", email="b@x.com", expires_at=NOW + 600))
        assert store.purge_expired_reset_tokens(NOW) == 1
        assert store.get_reset_token("stale") is None
        assert store.get_reset_token("other") is not None

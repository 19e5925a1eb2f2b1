"""Unit tests for auth/passwords.py -- bcrypt hashing and constant-time authentication.

Covers:
- verify_password() accepts the right password and rejects any other string
- a corrupt stored hash is a mismatch, not an exception
- authenticate_account() runs bcrypt even for unknown usernames (timing equalization)
- deactivated accounts cannot authenticate
"""

from unittest.mock import patch

import pytest

from auth import passwords
from auth.passwords import authenticate_account, hash_password, verify_password
from conftest import make_account


class TestVerifyPassword:
    @pytest.mark.parametrize("candidate", ["", "correct ", "Correct", "correct\x00", "incorrect", "c" * 200])
    def test_only_exact_password_matches(self, candidate: str) -> None:
        hashed = hash_password("correct")
        assert verify_password("correct", hashed) is True
        assert verify_password(candidate, hashed) is False

    def test_hash_is_salted(self) -> None:
        """Two hashes of one password differ but both verify."""
        a, b = hash_password("same-password"), hash_password("same-password")
        assert a != b
        assert verify_password("same-password", a)
        assert verify_password("same-password", b)

    def test_corrupt_hash_is_mismatch(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_work_factor_is_configurable(self) -> None:
        assert hash_password("pw", rounds=5).startswith("$2b$05$")


class TestAuthenticateAccount:
    def test_correct_password_returns_account(self, store) -> None:
        make_account(store, "alice", "correct")
        account = authenticate_account(store, "alice", "correct")
        assert account is not None
        assert account.username == "alice"

    def test_wrong_password_returns_none(self, store) -> None:
        make_account(store, "alice", "correct")
        assert authenticate_account(store, "alice", "wrong") is None

    def test_unknown_user_still_runs_bcrypt(self, store) -> None:
        """Unknown usernames must cost one bcrypt comparison, like a wrong password."""
        with patch.object(passwords, "verify_password", wraps=passwords.verify_password) as spy:
            assert authenticate_account(store, "bob", "whatever") is None
        spy.assert_called_once_with("whatever", passwords._DUMMY_HASH)

    def test_deactivated_account_cannot_authenticate(self, store) -> None:
        account_id = make_account(store, "mallory", "mallorypass1")
        store.deactivate_account(account_id)
        assert authenticate_account(store, "mallory", "mallorypass1") is None

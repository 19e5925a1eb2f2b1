"""Unit tests for auth/store.py -- AccountStore conditional writes.

Covers:
- lookups hide deactivated accounts
- enable_totp / clear_totp only apply when the secret still matches
- backup codes are replaced atomically and redeem exactly once
- driver failures surface as StorageError
"""

import pytest
from sqlalchemy import text

from auth.errors import StorageError
from auth.models import Account
from conftest import make_account


@pytest.fixture
def alice_id(store) -> int:
    return make_account(store, "alice", "correct")


class TestAccounts:
    def test_lookup_by_username_and_id(self, store, alice_id: int) -> None:
        by_name = store.get_by_username("alice")
        by_id = store.get_by_id(alice_id)
        assert by_name == by_id
        assert by_name.totp_enabled is False
        assert by_name.totp_secret is None
        assert by_name.created_at

    def test_unknown_returns_none(self, store) -> None:
        assert store.get_by_username("bob") is None
        assert store.get_by_id(999) is None

    def test_deactivation_is_soft(self, store, alice_id: int) -> None:
        assert store.deactivate_account(alice_id) is True
        assert store.get_by_username("alice") is None
        assert store.get_by_id(alice_id) is None
        assert store.has_accounts() is True

    def test_duplicate_username_is_storage_error(self, store, alice_id: int) -> None:
        with pytest.raises(StorageError):
            store.create_account(Account(username="alice", hashed_password="x"))

    def test_last_login_stamped(self, store, alice_id: int) -> None:
        store.update_last_login(alice_id)
        assert store.get_by_id(alice_id).last_login

    def test_update_password(self, store, alice_id: int) -> None:
        assert store.update_password(alice_id, "new-hash") is True
        assert store.get_by_id(alice_id).hashed_password == "new-hash"
        assert store.update_password(999, "new-hash") is False


class TestSecondFactorWrites:
    def test_setting_secret_leaves_flag(self, store, alice_id: int) -> None:
        assert store.update_totp_secret(alice_id, "SECRET1") is True
        account = store.get_by_id(alice_id)
        assert (account.totp_enabled, account.totp_secret) == (False, "SECRET1")

    def test_enable_requires_matching_secret(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "SECRET2")
        assert store.enable_totp(alice_id, "SECRET1") is False
        assert store.get_by_id(alice_id).totp_enabled is False
        assert store.enable_totp(alice_id, "SECRET2") is True
        assert store.get_by_id(alice_id).totp_enabled is True

    def test_enable_without_secret_fails(self, store, alice_id: int) -> None:
        assert store.enable_totp(alice_id, "ANYTHING") is False
        assert store.get_by_id(alice_id).totp_enabled is False

    def test_enable_replaces_backup_codes(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1", "h2"])
        store.enable_totp(alice_id, "S", ["h3"])
        assert [c.code_hash for c in store.list_backup_codes(alice_id)] == ["h3"]

    def test_failed_enable_keeps_old_backup_codes(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1"])
        assert store.enable_totp(alice_id, "WRONG", ["h9"]) is False
        assert [c.code_hash for c in store.list_backup_codes(alice_id)] == ["h1"]

    def test_clear_drops_secret_flag_and_codes_together(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1", "h2"])
        assert store.clear_totp(alice_id, "S") is True
        account = store.get_by_id(alice_id)
        assert (account.totp_enabled, account.totp_secret) == (False, None)
        assert store.list_backup_codes(alice_id) == []

    def test_clear_with_stale_secret_changes_nothing(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1"])
        assert store.clear_totp(alice_id, "OLD") is False
        account = store.get_by_id(alice_id)
        assert (account.totp_enabled, account.totp_secret) == (True, "S")
        assert store.count_unused_backup_codes(alice_id) == 1


class TestBackupCodeRedemption:
    def test_code_redeems_once(self, store, alice_id: int) -> None:
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1", "h2"])
        assert store.consume_backup_code(alice_id, "h1") is True
        assert store.consume_backup_code(alice_id, "h1") is False
        assert store.count_unused_backup_codes(alice_id) == 1
        consumed = [c for c in store.list_backup_codes(alice_id) if c.code_hash == "h1"]
        assert consumed[0].consumed_at is not None

    def test_code_bound_to_account(self, store, alice_id: int) -> None:
        carol_id = make_account(store, "carol", "carolpass123")
        store.update_totp_secret(alice_id, "S")
        store.enable_totp(alice_id, "S", ["h1"])
        assert store.consume_backup_code(carol_id, "h1") is False
        assert store.consume_backup_code(alice_id, "h1") is True


def test_driver_failure_is_storage_error(store, alice_id: int) -> None:
    with store.engine.begin() as conn:
        conn.execute(text("DROP TABLE backup_codes"))
    with pytest.raises(StorageError) as exc_info:
        store.consume_backup_code(alice_id, "h1")
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal server error"
    assert exc_info.value.__cause__ is not None

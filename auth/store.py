"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and backup codes.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account / _row_to_backup_code are the
mappers. Services and routes never touch SQL directly, and they depend on the
AccountRepository protocol rather than on this class, so tests can hand in a
store backed by an in-memory database.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity:
  Every second-factor mutation is a single conditional UPDATE keyed by
  account id and, where it matters, the secret the caller verified against.
  enable_totp() and clear_totp() also rewrite backup_codes inside the same
  transaction (engine.begin()), so no reader ever sees enabled=True with a
  NULL secret, or a cleared secret with live backup codes.

Errors:
  Lookups return None for "not found". Driver failures are re-raised as
  StorageError; the original exception is chained for the logs.

DB path: auth/st0r_auth.db unless DATABASE_URL is set.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import StorageError
from auth.models import Account, BackupCode

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'st0r_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "app_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, server_default=""),
    Column("password_hash", String(255), nullable=False),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("totp_secret", String(64)),  # base32; NULL until /2fa/setup
    Column("totp_enabled", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
)

_backup_codes = Table(
    "backup_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("app_users.id"), nullable=False, index=True),
    Column("code_hash", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("created_at", String(32), nullable=False),
    Column("consumed_at", Text),  # NULL = unused
)


# ---------------------------------------------------------------------------
# Repository interface
# ---------------------------------------------------------------------------


class AccountRepository(Protocol):
    """What the auth core needs from account storage."""

    def get_by_username(self, username: str) -> Account | None: ...

    def get_by_id(self, account_id: int) -> Account | None: ...

    def update_totp_secret(self, account_id: int, secret: str) -> bool: ...

    def enable_totp(self, account_id: int, expected_secret: str, backup_code_hashes: list[str] | None = None) -> bool: ...

    def clear_totp(self, account_id: int, expected_secret: str) -> bool: ...

    def consume_backup_code(self, account_id: int, code_hash: str) -> bool: ...

    def update_last_login(self, account_id: int) -> None: ...

    def update_password(self, account_id: int, hashed_password: str) -> bool: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """SQLAlchemy implementation of AccountRepository.

    Usage:
        store = AccountStore()
        store.create_account(Account(username="admin", hashed_password=hash_password("secret"), elevated=True))
        account = store.get_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with self._guard("create schema"):
            _metadata.create_all(self.engine)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            raise StorageError(f"{operation} failed") from exc

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Connection]:
        """engine.begin() wrapped so driver errors surface as StorageError."""
        with self._guard(operation), self.engine.begin() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        """Return True if at least one account row exists (active or not)."""
        with self._transaction("count accounts") as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises StorageError (wrapping IntegrityError) if the username exists.
        """
        with self._transaction("create account") as conn:
            result = conn.execute(
                _accounts.insert().values(
                    username=account.username,
                    email=account.email,
                    password_hash=account.hashed_password,
                    is_admin=1 if account.elevated else 0,
                    is_active=1 if account.is_active else 0,
                    totp_secret=account.totp_secret,
                    totp_enabled=1 if account.totp_enabled else 0,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> Account | None:
        """Look up an active account by exact username. Returns None if not found."""
        with self._transaction("get account by username") as conn:
            row = conn.execute(
                _accounts.select().where((_accounts.c.username == username) & (_accounts.c.is_active == 1))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an active account by primary key. Returns None if not found."""
        with self._transaction("get account by id") as conn:
            row = conn.execute(
                _accounts.select().where((_accounts.c.id == account_id) & (_accounts.c.is_active == 1))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_last_login(self, account_id: int) -> None:
        with self._transaction("update last login") as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=_now_iso()))

    def update_password(self, account_id: int, hashed_password: str) -> bool:
        with self._transaction("update password") as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.is_active == 1))
                .values(password_hash=hashed_password)
            )
        return result.rowcount > 0

    def deactivate_account(self, account_id: int) -> bool:
        """Soft delete. The row stays; lookups stop returning it."""
        with self._transaction("deactivate account") as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(is_active=0))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    def update_totp_secret(self, account_id: int, secret: str) -> bool:
        """Store a fresh secret. The enabled flag is left as it is.

        Replacing the secret of an account that already has 2FA enabled keeps
        it enabled under the new secret, so the invariant (enabled -> secret)
        still holds.
        """
        with self._transaction("update totp secret") as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.is_active == 1))
                .values(totp_secret=secret)
            )
        return result.rowcount > 0

    def enable_totp(self, account_id: int, expected_secret: str, backup_code_hashes: list[str] | None = None) -> bool:
        """Set totp_enabled=1 if the stored secret is still expected_secret.

        When backup_code_hashes is given, the account's previous codes are
        replaced by them in the same transaction. Returns False (and writes
        nothing) when the secret changed underneath the caller.
        """
        with self._transaction("enable totp") as conn:
            result = conn.execute(
                _accounts.update()
                .where(
                    (_accounts.c.id == account_id)
                    & (_accounts.c.is_active == 1)
                    & (_accounts.c.totp_secret == expected_secret)
                )
                .values(totp_enabled=1)
            )
            if result.rowcount == 0:
                return False
            if backup_code_hashes is not None:
                conn.execute(_backup_codes.delete().where(_backup_codes.c.account_id == account_id))
                now = _now_iso()
                if backup_code_hashes:
                    conn.execute(
                        _backup_codes.insert(),
                        [{"account_id": account_id, "code_hash": h, "created_at": now} for h in backup_code_hashes],
                    )
        return True

    def clear_totp(self, account_id: int, expected_secret: str) -> bool:
        """Drop secret, flag and backup codes together if the secret still matches."""
        with self._transaction("clear totp") as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.totp_secret == expected_secret))
                .values(totp_enabled=0, totp_secret=None)
            )
            if result.rowcount == 0:
                return False
            conn.execute(_backup_codes.delete().where(_backup_codes.c.account_id == account_id))
        return True

    # ------------------------------------------------------------------
    # Backup codes
    # ------------------------------------------------------------------

    def list_backup_codes(self, account_id: int) -> list[BackupCode]:
        with self._transaction("list backup codes") as conn:
            rows = conn.execute(
                _backup_codes.select().where(_backup_codes.c.account_id == account_id).order_by(_backup_codes.c.id)
            ).fetchall()
        return [_row_to_backup_code(r) for r in rows]

    def count_unused_backup_codes(self, account_id: int) -> int:
        with self._transaction("count backup codes") as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_backup_codes)
                .where((_backup_codes.c.account_id == account_id) & (_backup_codes.c.consumed_at.is_(None)))
            ).scalar()
        return result or 0

    def consume_backup_code(self, account_id: int, code_hash: str) -> bool:
        """Mark one unused matching code as consumed. Check and consume are one UPDATE.

        Two concurrent redemptions of the same code cannot both succeed: the
        second UPDATE finds consumed_at already set and touches no row.
        """
        with self._transaction("consume backup code") as conn:
            result = conn.execute(
                _backup_codes.update()
                .where(
                    (_backup_codes.c.account_id == account_id)
                    & (_backup_codes.c.code_hash == code_hash)
                    & (_backup_codes.c.consumed_at.is_(None))
                )
                .values(consumed_at=_now_iso())
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.password_hash,
        elevated=bool(row.is_admin),
        is_active=bool(row.is_active),
        totp_secret=row.totp_secret,
        totp_enabled=bool(row.totp_enabled),
        last_login=row.last_login,
        created_at=row.created_at,
    )


def _row_to_backup_code(row) -> BackupCode:
    return BackupCode(
        id=row.id,
        account_id=row.account_id,
        code_hash=row.code_hash,
        created_at=row.created_at,
        consumed_at=row.consumed_at,
    )

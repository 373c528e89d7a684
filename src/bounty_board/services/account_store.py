"""SQLite-backed records, balances, transfer log and activity events."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

from bounty_board.core.exceptions import (
    AlreadyExistsError,
    InsufficientBalanceError,
    InvalidInstructionError,
    NotFoundError,
)
from bounty_board.services.settlement import checked_add, validate_amount

if TYPE_CHECKING:
    from collections.abc import Iterator

    from bounty_board.models import RecordKind


class AccountStore:
    """
    Persistent state of the board.

    Records (config, treasury, tasks) are JSON documents keyed by kind and
    identifier. Balances are stored as decimal text so the full unsigned
    64-bit range survives SQLite's signed INTEGER type.

    Every mutating method is effective immediately. Wrap several calls in
    ``transaction()`` to make them atomic; inner scopes join the outer one.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._depth = 0
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS records (
                    kind TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (kind, record_id)
                );

                CREATE TABLE IF NOT EXISTS balances (
                    account_id TEXT PRIMARY KEY,
                    balance TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS transfers (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    source TEXT,
                    destination TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    task_id INTEGER,
                    created_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event TEXT NOT NULL,
                    task_id INTEGER,
                    actor TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS consumed_nonces (
                    signer TEXT NOT NULL,
                    nonce TEXT NOT NULL,
                    consumed_at INTEGER NOT NULL,
                    PRIMARY KEY (signer, nonce)
                );

                CREATE INDEX IF NOT EXISTS ix_transfers_source ON transfers(source);
                CREATE INDEX IF NOT EXISTS ix_transfers_destination ON transfers(destination);
                """
            )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Hold the write lock for the duration of the block.

        Commits on normal exit and rolls back every change made inside the
        block if it raises.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
                self._db.execute("COMMIT")
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
            finally:
                self._depth = 0

    # -- records ----------------------------------------------------------

    def create(self, kind: RecordKind, record_id: str, record: dict[str, Any]) -> None:
        """Insert a record. Raises AlreadyExistsError if the identifier is taken."""
        with self.transaction():
            try:
                self._db.execute(
                    "INSERT INTO records (kind, record_id, data) VALUES (?, ?, ?)",
                    (kind.value, record_id, json.dumps(record, sort_keys=True)),
                )
            except sqlite3.IntegrityError as exc:
                raise AlreadyExistsError(
                    "ALREADY_EXISTS",
                    f"A {kind.value} record already exists at {record_id}",
                    {"kind": kind.value, "record_id": record_id},
                ) from exc

    def exists(self, kind: RecordKind, record_id: str) -> bool:
        with self._lock:
            row = self._db.execute(
                "SELECT 1 FROM records WHERE kind = ? AND record_id = ?",
                (kind.value, record_id),
            ).fetchone()
        return row is not None

    def read(self, kind: RecordKind, record_id: str) -> dict[str, Any]:
        """Fetch a record. Raises NotFoundError if absent."""
        with self._lock:
            row = self._db.execute(
                "SELECT data FROM records WHERE kind = ? AND record_id = ?",
                (kind.value, record_id),
            ).fetchone()
        if row is None:
            raise NotFoundError(
                "NOT_FOUND",
                f"No {kind.value} record at {record_id}",
                {"kind": kind.value, "record_id": record_id},
            )
        data: dict[str, Any] = json.loads(row["data"])
        return data

    def write(self, kind: RecordKind, record_id: str, record: dict[str, Any]) -> None:
        """Replace an existing record. Raises NotFoundError if absent."""
        with self.transaction():
            cursor = self._db.execute(
                "UPDATE records SET data = ? WHERE kind = ? AND record_id = ?",
                (json.dumps(record, sort_keys=True), kind.value, record_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(
                    "NOT_FOUND",
                    f"No {kind.value} record at {record_id}",
                    {"kind": kind.value, "record_id": record_id},
                )

    def list_records(self, kind: RecordKind) -> list[dict[str, Any]]:
        """All records of one kind in insertion order."""
        with self._lock:
            rows = self._db.execute(
                "SELECT data FROM records WHERE kind = ? ORDER BY rowid", (kind.value,)
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    # -- balances ---------------------------------------------------------

    def balance(self, account_id: str) -> int:
        """Current balance; accounts never credited read as 0."""
        with self._lock:
            row = self._db.execute(
                "SELECT balance FROM balances WHERE account_id = ?", (account_id,)
            ).fetchone()
        return int(row["balance"]) if row is not None else 0

    def _set_balance(self, account_id: str, balance: int) -> None:
        self._db.execute(
            "INSERT INTO balances (account_id, balance) VALUES (?, ?) "
            "ON CONFLICT(account_id) DO UPDATE SET balance = excluded.balance",
            (account_id, str(balance)),
        )

    def debit(self, account_id: str, amount: int) -> int:
        """Remove ``amount`` and return the new balance."""
        validate_amount(amount, "amount")
        with self.transaction():
            current = self.balance(account_id)
            if current < amount:
                raise InsufficientBalanceError(
                    "INSUFFICIENT_BALANCE",
                    "Insufficient funds for this debit",
                    {"account": account_id, "balance": current, "amount": amount},
                )
            new_balance = current - amount
            self._set_balance(account_id, new_balance)
        return new_balance

    def credit(self, account_id: str, amount: int) -> int:
        """Add ``amount`` and return the new balance. Creates the account if needed."""
        validate_amount(amount, "amount")
        with self.transaction():
            new_balance = checked_add(self.balance(account_id), amount)
            self._set_balance(account_id, new_balance)
        return new_balance

    def open_account(self, account_id: str, initial_balance: int, created_at: int = 0) -> int:
        """Fund a fresh account. Raises AlreadyExistsError if it already holds a balance row."""
        validate_amount(initial_balance, "initial_balance")
        with self.transaction():
            row = self._db.execute(
                "SELECT 1 FROM balances WHERE account_id = ?", (account_id,)
            ).fetchone()
            if row is not None:
                raise AlreadyExistsError(
                    "ALREADY_EXISTS",
                    "Account already exists",
                    {"account": account_id},
                )
            self._set_balance(account_id, initial_balance)
            if initial_balance > 0:
                self.record_transfer(
                    None, account_id, initial_balance, "initial_balance", None, created_at
                )
        return initial_balance

    # -- history ----------------------------------------------------------

    def record_transfer(
        self,
        source: str | None,
        destination: str,
        amount: int,
        reason: str,
        task_id: int | None,
        created_at: int,
    ) -> None:
        with self.transaction():
            self._db.execute(
                "INSERT INTO transfers "
                "(source, destination, amount, reason, task_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (source, destination, str(amount), reason, task_id, created_at),
            )

    def get_transfers(self, account_id: str) -> list[dict[str, Any]]:
        """Transfers into or out of an account, oldest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT seq, source, destination, amount, reason, task_id, created_at "
                "FROM transfers WHERE source = ? OR destination = ? ORDER BY seq",
                (account_id, account_id),
            ).fetchall()
        return [
            {
                "seq": row["seq"],
                "source": row["source"],
                "destination": row["destination"],
                "amount": int(row["amount"]),
                "reason": row["reason"],
                "task_id": row["task_id"],
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def record_event(
        self,
        event: str,
        task_id: int | None,
        actor: str,
        data: dict[str, Any],
        created_at: int,
    ) -> None:
        with self.transaction():
            self._db.execute(
                "INSERT INTO events (event, task_id, actor, data, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (event, task_id, actor, json.dumps(data, sort_keys=True), created_at),
            )

    def consume_nonce(self, signer: str, nonce: str, consumed_at: int) -> None:
        """Mark an instruction nonce as used. Raises on a second use by the same signer."""
        with self.transaction():
            try:
                self._db.execute(
                    "INSERT INTO consumed_nonces (signer, nonce, consumed_at) VALUES (?, ?, ?)",
                    (signer, nonce, consumed_at),
                )
            except sqlite3.IntegrityError as exc:
                raise InvalidInstructionError(
                    "REPLAYED_INSTRUCTION",
                    "Instruction nonce has already been used",
                    {"signer": signer, "nonce": nonce},
                ) from exc

    def list_events(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Activity events, newest first."""
        query = "SELECT seq, event, task_id, actor, data, created_at FROM events ORDER BY seq DESC"
        params: list[object] = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [
            {
                "seq": row["seq"],
                "event": row["event"],
                "task_id": row["task_id"],
                "actor": row["actor"],
                "data": json.loads(row["data"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from ..models.note import Note
from ..models.transaction import (
    IndexedTransaction,
    TrackedTransaction,
    TransactionStatus,
    TransactionType,
)
from . import db as dbmod


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _status_values(statuses: Iterable[TransactionStatus]) -> list[str]:
    return [TransactionStatus(s).value for s in statuses]


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


def _row_to_note(row: sqlite3.Row) -> Note:
    return Note(
        id=int(row["id"]),
        title=row["title"],
        content=row["content"] or "",
        category=row["category"],
        is_pinned=bool(row["is_pinned"]),
        created_by_wallet=row["created_by_wallet"],
        on_chain=bool(row["on_chain"]),
        latest_tx_hash=row["latest_tx_hash"],
        status=TransactionStatus(row["status"]) if row["status"] else None,
        created_at=dbmod.from_db_time(row["created_at"]),
        updated_at=dbmod.from_db_time(row["updated_at"]),
    )


def _row_to_tracked(row: sqlite3.Row) -> TrackedTransaction:
    return TrackedTransaction(
        id=int(row["id"]),
        note_id=int(row["note_id"]),
        tx_type=TransactionType(row["tx_type"]),
        tx_hash=row["tx_hash"],
        status=TransactionStatus(row["status"]),
        wallet_address=row["wallet_address"],
        metadata_json=row["metadata_json"],
        block_height=row["block_height"],
        block_time=dbmod.from_db_time(row["block_time"]),
        retry_count=int(row["retry_count"]),
        error_message=row["error_message"],
        created_at=dbmod.from_db_time(row["created_at"]),
        confirmed_at=dbmod.from_db_time(row["confirmed_at"]),
        last_checked_at=dbmod.from_db_time(row["last_checked_at"]),
        retried_at=dbmod.from_db_time(row["retried_at"]),
    )


def _row_to_indexed(row: sqlite3.Row) -> IndexedTransaction:
    return IndexedTransaction(
        id=int(row["id"]),
        tx_hash=row["tx_hash"],
        block_height=row["block_height"],
        block_time=dbmod.from_db_time(row["block_time"]),
        action_type=TransactionType(row["action_type"]) if row["action_type"] else None,
        status=TransactionStatus(row["status"]),
        metadata_json=row["metadata_json"],
        wallet_address=row["wallet_address"],
        note_id=row["note_id"],
        note_title=row["note_title"],
        indexed_at=dbmod.from_db_time(row["indexed_at"]),
        confirmations=row["confirmations"],
    )


class RecordStore:
    """SQLite persistence for notes, tracked transactions and indexed transactions.

    Opens a short-lived connection per call, or reuses the thread's
    connection inside ``atomic()``. Saves return a fresh copy of the stored
    record; callers never share mutable state with the store.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return dbmod.connect(self.db_path)

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            dbmod.create_schema(conn)
            conn.commit()
        finally:
            conn.close()

    def _active(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "conn", None)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run every store call made on this thread inside one SQLite transaction.

        Commits when the block exits normally and rolls back if it raises.
        Nested blocks join the outer transaction.
        """
        if self._active() is not None:
            yield
            return

        conn = self._connect()
        self._local.conn = conn
        try:
            with conn:
                yield
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        active = self._active()
        if active is not None:
            yield active
            return

        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._reading() as conn:
            return conn.execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._reading() as conn:
            return conn.execute(sql, params).fetchone()

    def _write(self, sql: str, params: tuple = ()) -> int:
        """Run one write statement; returns lastrowid or rowcount.

        Outside ``atomic()`` the statement commits on its own.
        """
        active = self._active()
        if active is not None:
            cur = active.execute(sql, params)
        else:
            conn = self._connect()
            try:
                with conn:
                    cur = conn.execute(sql, params)
            finally:
                conn.close()
        return cur.lastrowid if sql.lstrip().upper().startswith("INSERT") else cur.rowcount

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def save_note(self, note: Note) -> Note:
        now = _utc_now()
        created_at = note.created_at or now
        values = (
            note.title,
            note.content or "",
            note.category,
            int(note.is_pinned),
            note.created_by_wallet,
            int(note.on_chain),
            note.latest_tx_hash,
            note.status.value if note.status else None,
            dbmod.to_db_time(created_at),
            dbmod.to_db_time(now),
        )
        if note.id is None:
            note_id = self._write(
                """
                INSERT INTO notes(title, content, category, is_pinned, created_by_wallet,
                                  on_chain, latest_tx_hash, status, created_at, updated_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
        else:
            note_id = note.id
            updated = self._write(
                """
                UPDATE notes SET title = ?, content = ?, category = ?, is_pinned = ?,
                  created_by_wallet = ?, on_chain = ?, latest_tx_hash = ?, status = ?,
                  created_at = ?, updated_at = ?
                WHERE id = ?
                """,
                values + (note_id,),
            )
            if updated == 0:
                # Explicit id not stored yet (imports, fixtures)
                self._write(
                    """
                    INSERT INTO notes(title, content, category, is_pinned, created_by_wallet,
                                      on_chain, latest_tx_hash, status, created_at, updated_at, id)
                    VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    values + (note_id,),
                )

        saved = self.get_note(note_id)
        if saved is None:
            raise RuntimeError(f"Note {note_id} was not readable after save")
        return saved

    def get_note(self, note_id: int) -> Optional[Note]:
        row = self._fetchone("SELECT * FROM notes WHERE id = ?", (note_id,))
        return _row_to_note(row) if row is not None else None

    def list_notes(self, *, include_off_chain: bool = True) -> list[Note]:
        sql = "SELECT * FROM notes"
        if not include_off_chain:
            sql += " WHERE on_chain = 1"
        rows = self._fetchall(sql + " ORDER BY is_pinned DESC, updated_at DESC, id DESC")
        return [_row_to_note(r) for r in rows]

    def list_notes_by_wallet(self, wallet_address: str) -> list[Note]:
        rows = self._fetchall(
            "SELECT * FROM notes WHERE created_by_wallet = ? ORDER BY updated_at DESC, id DESC",
            (wallet_address,),
        )
        return [_row_to_note(r) for r in rows]

    def search_notes(self, keyword: str) -> list[Note]:
        pattern = f"%{keyword.lower()}%"
        rows = self._fetchall(
            "SELECT * FROM notes WHERE lower(title) LIKE ? OR lower(content) LIKE ? ORDER BY updated_at DESC, id DESC",
            (pattern, pattern),
        )
        return [_row_to_note(r) for r in rows]

    def delete_note(self, note_id: int) -> bool:
        return self._write("DELETE FROM notes WHERE id = ?", (note_id,)) > 0

    # ------------------------------------------------------------------
    # Tracked transactions
    # ------------------------------------------------------------------

    def save_tracked(self, tx: TrackedTransaction) -> TrackedTransaction:
        created_at = tx.created_at or _utc_now()
        values = (
            tx.note_id,
            tx.tx_type.value,
            tx.tx_hash,
            tx.status.value,
            tx.wallet_address,
            tx.metadata_json,
            tx.block_height,
            dbmod.to_db_time(tx.block_time),
            tx.retry_count,
            tx.error_message,
            dbmod.to_db_time(created_at),
            dbmod.to_db_time(tx.confirmed_at),
            dbmod.to_db_time(tx.last_checked_at),
            dbmod.to_db_time(tx.retried_at),
        )
        if tx.id is None:
            tx_id = self._write(
                """
                INSERT INTO tracked_transactions(
                  note_id, tx_type, tx_hash, status, wallet_address, metadata_json,
                  block_height, block_time, retry_count, error_message,
                  created_at, confirmed_at, last_checked_at, retried_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
        else:
            tx_id = tx.id
            updated = self._write(
                """
                UPDATE tracked_transactions SET
                  note_id = ?, tx_type = ?, tx_hash = ?, status = ?, wallet_address = ?,
                  metadata_json = ?, block_height = ?, block_time = ?, retry_count = ?,
                  error_message = ?, created_at = ?, confirmed_at = ?, last_checked_at = ?,
                  retried_at = ?
                WHERE id = ?
                """,
                values + (tx_id,),
            )
            if updated == 0:
                raise KeyError(f"Unknown tracked transaction id: {tx_id}")

        saved = self.get_tracked(tx_id)
        if saved is None:
            raise RuntimeError(f"Tracked transaction {tx_id} was not readable after save")
        return saved

    def get_tracked(self, tx_id: int) -> Optional[TrackedTransaction]:
        row = self._fetchone("SELECT * FROM tracked_transactions WHERE id = ?", (tx_id,))
        return _row_to_tracked(row) if row is not None else None

    def get_tracked_by_hash(self, tx_hash: str) -> Optional[TrackedTransaction]:
        row = self._fetchone("SELECT * FROM tracked_transactions WHERE tx_hash = ?", (tx_hash,))
        return _row_to_tracked(row) if row is not None else None

    def list_tracked_by_status(self, *statuses: TransactionStatus) -> list[TrackedTransaction]:
        values = _status_values(statuses)
        if not values:
            return []
        rows = self._fetchall(
            f"SELECT * FROM tracked_transactions WHERE status IN ({_placeholders(len(values))}) ORDER BY created_at, id",
            tuple(values),
        )
        return [_row_to_tracked(r) for r in rows]

    def list_tracked_for_note(self, note_id: int) -> list[TrackedTransaction]:
        rows = self._fetchall(
            "SELECT * FROM tracked_transactions WHERE note_id = ? ORDER BY created_at DESC, id DESC",
            (note_id,),
        )
        return [_row_to_tracked(r) for r in rows]

    def list_tracked_by_wallet(self, wallet_address: str) -> list[TrackedTransaction]:
        rows = self._fetchall(
            "SELECT * FROM tracked_transactions WHERE wallet_address = ? ORDER BY created_at DESC, id DESC",
            (wallet_address,),
        )
        return [_row_to_tracked(r) for r in rows]

    def delete_tracked(self, tx_id: int) -> bool:
        return self._write("DELETE FROM tracked_transactions WHERE id = ?", (tx_id,)) > 0

    def count_tracked_by_status(self) -> dict[str, int]:
        rows = self._fetchall("SELECT status, COUNT(1) AS n FROM tracked_transactions GROUP BY status")
        counts = {s.value: 0 for s in TransactionStatus}
        counts.update({str(r["status"]): int(r["n"]) for r in rows})
        return counts

    # ------------------------------------------------------------------
    # Indexed transactions
    # ------------------------------------------------------------------

    def indexed_exists(self, tx_hash: str) -> bool:
        return self._fetchone("SELECT 1 FROM indexed_transactions WHERE tx_hash = ?", (tx_hash,)) is not None

    def save_indexed(self, tx: IndexedTransaction) -> IndexedTransaction:
        """Insert or update an indexed row.

        Raises:
            sqlite3.IntegrityError: If a new row reuses an already indexed hash
        """
        values = (
            tx.tx_hash,
            tx.block_height,
            dbmod.to_db_time(tx.block_time),
            tx.action_type.value if tx.action_type else None,
            tx.status.value,
            tx.metadata_json,
            tx.wallet_address,
            tx.note_id,
            tx.note_title,
            dbmod.to_db_time(tx.indexed_at or _utc_now()),
            tx.confirmations,
        )
        if tx.id is None:
            tx_id = self._write(
                """
                INSERT INTO indexed_transactions(
                  tx_hash, block_height, block_time, action_type, status, metadata_json,
                  wallet_address, note_id, note_title, indexed_at, confirmations
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
        else:
            tx_id = tx.id
            self._write(
                """
                UPDATE indexed_transactions SET
                  tx_hash = ?, block_height = ?, block_time = ?, action_type = ?, status = ?,
                  metadata_json = ?, wallet_address = ?, note_id = ?, note_title = ?,
                  indexed_at = ?, confirmations = ?
                WHERE id = ?
                """,
                values + (tx_id,),
            )

        row = self._fetchone("SELECT * FROM indexed_transactions WHERE id = ?", (tx_id,))
        if row is None:
            raise RuntimeError(f"Indexed transaction {tx_id} was not readable after save")
        return _row_to_indexed(row)

    def get_indexed_by_hash(self, tx_hash: str) -> Optional[IndexedTransaction]:
        row = self._fetchone("SELECT * FROM indexed_transactions WHERE tx_hash = ?", (tx_hash,))
        return _row_to_indexed(row) if row is not None else None

    def list_indexed_by_status(self, *statuses: TransactionStatus) -> list[IndexedTransaction]:
        values = _status_values(statuses)
        if not values:
            return []
        rows = self._fetchall(
            f"SELECT * FROM indexed_transactions WHERE status IN ({_placeholders(len(values))}) ORDER BY indexed_at, id",
            tuple(values),
        )
        return [_row_to_indexed(r) for r in rows]

    def list_indexed_by_wallet(self, wallet_address: str) -> list[IndexedTransaction]:
        rows = self._fetchall(
            "SELECT * FROM indexed_transactions WHERE wallet_address = ? ORDER BY block_height DESC, id DESC",
            (wallet_address,),
        )
        return [_row_to_indexed(r) for r in rows]

    def list_indexed_for_note(self, note_id: int) -> list[IndexedTransaction]:
        rows = self._fetchall(
            "SELECT * FROM indexed_transactions WHERE note_id = ? ORDER BY block_height DESC, id DESC",
            (note_id,),
        )
        return [_row_to_indexed(r) for r in rows]

    def count_indexed_by_status(self) -> dict[str, int]:
        rows = self._fetchall("SELECT status, COUNT(1) AS n FROM indexed_transactions GROUP BY status")
        counts = {s.value: 0 for s in TransactionStatus}
        counts.update({str(r["status"]): int(r["n"]) for r in rows})
        return counts

    def stats(self) -> dict[str, Any]:
        return {
            "notes": int(self._fetchone("SELECT COUNT(1) AS n FROM notes")["n"]),
            "tracked": self.count_tracked_by_status(),
            "indexed": self.count_indexed_by_status(),
        }

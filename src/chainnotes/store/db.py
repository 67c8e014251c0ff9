from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS notes(
          id INTEGER PRIMARY KEY,
          title TEXT NOT NULL,
          content TEXT NOT NULL DEFAULT '',
          category TEXT,
          is_pinned INTEGER NOT NULL DEFAULT 0,
          created_by_wallet TEXT,
          on_chain INTEGER NOT NULL DEFAULT 0,
          latest_tx_hash TEXT,
          status TEXT,
          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS tracked_transactions(
          id INTEGER PRIMARY KEY,
          note_id INTEGER NOT NULL,
          tx_type TEXT NOT NULL,
          tx_hash TEXT UNIQUE,
          status TEXT NOT NULL,
          wallet_address TEXT NOT NULL,
          metadata_json TEXT,
          block_height INTEGER,
          block_time TEXT,
          retry_count INTEGER NOT NULL DEFAULT 0,
          error_message TEXT,
          created_at TEXT NOT NULL,
          confirmed_at TEXT,
          last_checked_at TEXT,
          retried_at TEXT,
          FOREIGN KEY(note_id) REFERENCES notes(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS indexed_transactions(
          id INTEGER PRIMARY KEY,
          tx_hash TEXT UNIQUE NOT NULL,
          block_height INTEGER,
          block_time TEXT,
          action_type TEXT,
          status TEXT NOT NULL,
          metadata_json TEXT,
          wallet_address TEXT,
          note_id INTEGER,
          note_title TEXT,
          indexed_at TEXT NOT NULL,
          confirmations INTEGER,
          FOREIGN KEY(note_id) REFERENCES notes(id) ON DELETE SET NULL
        );

        CREATE INDEX IF NOT EXISTS idx_notes_wallet ON notes(created_by_wallet);
        CREATE INDEX IF NOT EXISTS idx_tracked_status ON tracked_transactions(status);
        CREATE INDEX IF NOT EXISTS idx_tracked_note_id ON tracked_transactions(note_id);
        CREATE INDEX IF NOT EXISTS idx_tracked_wallet ON tracked_transactions(wallet_address);
        CREATE INDEX IF NOT EXISTS idx_indexed_status ON indexed_transactions(status);
        CREATE INDEX IF NOT EXISTS idx_indexed_wallet ON indexed_transactions(wallet_address);
        CREATE INDEX IF NOT EXISTS idx_indexed_note_id ON indexed_transactions(note_id);
        """
    )


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from conftest import OWNER, tx_hash

from chainnotes.models.note import Note
from chainnotes.models.transaction import (
    IndexedTransaction,
    TrackedTransaction,
    TransactionStatus,
    TransactionType,
)
from chainnotes.store import RecordStore


def test_note_roundtrip_and_timestamps(store: RecordStore) -> None:
    saved = store.save_note(Note(title="A", content="body", category="work", is_pinned=True, created_by_wallet=OWNER))

    assert saved.id is not None
    assert saved.created_at is not None
    assert saved.updated_at is not None
    assert saved.created_at.tzinfo is not None

    saved.title = "B"
    again = store.save_note(saved)
    assert again.id == saved.id
    assert again.title == "B"
    assert again.created_at == saved.created_at
    assert again.updated_at >= saved.updated_at


def test_schema_survives_reopen(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "db.sqlite"
    first = RecordStore(db)
    note = first.save_note(Note(title="persisted"))

    second = RecordStore(db)
    assert second.get_note(note.id).title == "persisted"


def test_search_is_case_insensitive(store: RecordStore) -> None:
    store.save_note(Note(title="Shopping List", content="milk"))
    store.save_note(Note(title="Work", content="call the Plumber"))

    assert [n.title for n in store.search_notes("shopping")] == ["Shopping List"]
    assert [n.title for n in store.search_notes("plumber")] == ["Work"]
    assert store.search_notes("zzz") == []


def test_list_notes_puts_pinned_first(store: RecordStore) -> None:
    store.save_note(Note(title="plain"))
    store.save_note(Note(title="pinned", is_pinned=True))
    store.save_note(Note(title="off", on_chain=False))
    store.save_note(Note(title="chain", on_chain=True))

    assert store.list_notes()[0].title == "pinned"
    assert [n.title for n in store.list_notes(include_off_chain=False)] == ["chain"]


def test_tracked_hash_is_unique(store: RecordStore, owned_note: Note) -> None:
    store.save_tracked(
        TrackedTransaction(note_id=owned_note.id, tx_type=TransactionType.CREATE, wallet_address=OWNER, tx_hash=tx_hash(1))
    )
    with pytest.raises(sqlite3.IntegrityError):
        store.save_tracked(
            TrackedTransaction(note_id=owned_note.id, tx_type=TransactionType.DELETE, wallet_address=OWNER, tx_hash=tx_hash(1))
        )


def test_unsubmitted_tracked_rows_may_share_null_hash(store: RecordStore, owned_note: Note) -> None:
    for _ in range(2):
        store.save_tracked(TrackedTransaction(note_id=owned_note.id, tx_type=TransactionType.DELETE, wallet_address=OWNER))
    assert store.count_tracked_by_status()["PENDING"] == 2


def test_indexed_hash_is_unique(store: RecordStore) -> None:
    store.save_indexed(IndexedTransaction(tx_hash=tx_hash(1), block_height=10))
    assert store.indexed_exists(tx_hash(1))
    with pytest.raises(sqlite3.IntegrityError):
        store.save_indexed(IndexedTransaction(tx_hash=tx_hash(1), block_height=11))


def test_deleting_note_cascades_tracked_and_detaches_indexed(store: RecordStore, owned_note: Note) -> None:
    tracked = store.save_tracked(
        TrackedTransaction(note_id=owned_note.id, tx_type=TransactionType.DELETE, wallet_address=OWNER)
    )
    store.save_indexed(IndexedTransaction(tx_hash=tx_hash(1), note_id=owned_note.id, note_title=owned_note.title))

    assert store.delete_note(owned_note.id) is True

    assert store.get_tracked(tracked.id) is None
    indexed = store.get_indexed_by_hash(tx_hash(1))
    assert indexed is not None
    assert indexed.note_id is None
    assert store.indexed_exists(tx_hash(1))


def test_status_queries_and_counts(store: RecordStore, owned_note: Note) -> None:
    for status in (TransactionStatus.PENDING, TransactionStatus.MEMPOOL, TransactionStatus.MEMPOOL, TransactionStatus.FAILED):
        store.save_tracked(
            TrackedTransaction(note_id=owned_note.id, tx_type=TransactionType.UPDATE, wallet_address=OWNER, status=status)
        )
    store.save_indexed(IndexedTransaction(tx_hash=tx_hash(1), status=TransactionStatus.PENDING))
    store.save_indexed(IndexedTransaction(tx_hash=tx_hash(2)))

    assert len(store.list_tracked_by_status(TransactionStatus.PENDING, TransactionStatus.MEMPOOL)) == 3
    assert store.list_tracked_by_status() == []
    assert store.count_tracked_by_status() == {"PENDING": 1, "MEMPOOL": 2, "CONFIRMED": 0, "FAILED": 1}
    assert store.count_indexed_by_status()["CONFIRMED"] == 1
    assert [r.tx_hash for r in store.list_indexed_by_status(TransactionStatus.PENDING)] == [tx_hash(1)]
    assert store.stats()["notes"] == 1


def test_atomic_rolls_back_every_write_on_error(store: RecordStore) -> None:
    with pytest.raises(sqlite3.OperationalError):
        with store.atomic():
            note = store.save_note(Note(title="Half", created_by_wallet=OWNER))
            store.save_indexed(IndexedTransaction(tx_hash=tx_hash(1), note_id=note.id))
            raise sqlite3.OperationalError("database is locked")

    assert store.list_notes() == []
    assert not store.indexed_exists(tx_hash(1))


def test_atomic_commits_and_nested_blocks_join(store: RecordStore) -> None:
    with store.atomic():
        store.save_note(Note(title="Outer", created_by_wallet=OWNER))
        with store.atomic():
            store.save_note(Note(title="Inner", created_by_wallet=OWNER))

    assert {n.title for n in store.list_notes()} == {"Outer", "Inner"}


def test_update_of_missing_indexed_row_raises(store: RecordStore) -> None:
    with pytest.raises(RuntimeError, match="not readable after save"):
        store.save_indexed(IndexedTransaction(id=999, tx_hash=tx_hash(5)))

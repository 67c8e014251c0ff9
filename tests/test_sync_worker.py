"""Tests for the tracked transaction sync worker."""

from datetime import datetime, timedelta, timezone

from conftest import OWNER, tx_hash

from chainnotes.models.note import Note
from chainnotes.models.transaction import TransactionStatus
from chainnotes.transactions import SyncSummary, SyncWorker
from chainnotes.transactions.sync_worker import EXPIRED_REASON, RETRIES_EXHAUSTED_REASON

HASH_A = "a" * 64


def _worker(store, ledger, sync_config, lifecycle, offset=timedelta(0)):
    return SyncWorker(store, ledger, sync_config, lifecycle=lifecycle, clock=lambda: datetime.now(timezone.utc) + offset)


def _submitted(lifecycle, note_id, hash_=HASH_A):
    tx = lifecycle.create(note_id, "DELETE", OWNER)
    return lifecycle.submit(tx.id, hash_)


def test_create_submit_confirm_scenario(store, ledger, sync_config, lifecycle):
    store.save_note(Note(id=7, title="Seven", created_by_wallet=OWNER))
    tx = lifecycle.create(7, "CREATE", "addr_test1abc", '{"title":"X"}')
    assert tx.status == TransactionStatus.PENDING

    tx = lifecycle.submit(tx.id, HASH_A)
    assert tx.status == TransactionStatus.MEMPOOL
    assert store.get_note(7).latest_tx_hash == HASH_A

    ledger.add_tx(None, HASH_A, 1000)
    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary == SyncSummary(checked=1, confirmed=1)
    confirmed = store.get_tracked(tx.id)
    assert confirmed.status == TransactionStatus.CONFIRMED
    assert confirmed.block_height == 1000
    assert confirmed.block_time == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert confirmed.confirmed_at is not None
    note = store.get_note(7)
    assert note.on_chain is True
    assert note.status == TransactionStatus.CONFIRMED


def test_not_yet_visible_spends_a_retry(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)

    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary.waiting == 1
    checked = store.get_tracked(tx.id)
    assert checked.status == TransactionStatus.MEMPOOL
    assert checked.retry_count == 1
    assert checked.last_checked_at is not None


def test_transaction_without_block_is_still_waiting(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)
    ledger.add_tx(None, HASH_A, None)

    _worker(store, ledger, sync_config, lifecycle).sweep()

    assert store.get_tracked(tx.id).status == TransactionStatus.MEMPOOL
    assert store.get_tracked(tx.id).retry_count == 1


def test_timeout_dominates_retries(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)
    tx.retry_count = 99
    store.save_tracked(tx)
    ledger.add_tx(None, HASH_A, 1000)

    summary = _worker(store, ledger, sync_config, lifecycle, offset=timedelta(minutes=11)).sweep()

    assert summary.expired == 1
    assert summary.confirmed == 0
    expired = store.get_tracked(tx.id)
    assert expired.status == TransactionStatus.FAILED
    assert expired.error_message == EXPIRED_REASON
    assert store.get_note(owned_note.id).status == TransactionStatus.FAILED
    assert ledger.detail_calls == []


def test_retry_budget_exhausted(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)
    tx.retry_count = sync_config.max_retry_count
    store.save_tracked(tx)
    ledger.add_tx(None, HASH_A, 1000)

    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary.failed == 1
    failed = store.get_tracked(tx.id)
    assert failed.status == TransactionStatus.FAILED
    assert failed.error_message == RETRIES_EXHAUSTED_REASON
    assert ledger.detail_calls == []


def test_lookup_error_fails_only_when_budget_runs_out(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)
    ledger.fail_detail(HASH_A)
    worker = _worker(store, ledger, sync_config, lifecycle)

    assert worker.sweep().waiting == 1
    assert store.get_tracked(tx.id).retry_count == 1
    assert store.get_tracked(tx.id).status == TransactionStatus.MEMPOOL

    tx = store.get_tracked(tx.id)
    tx.retry_count = sync_config.max_retry_count - 1
    store.save_tracked(tx)

    summary = worker.sweep()

    assert summary.failed == 1
    failed = store.get_tracked(tx.id)
    assert failed.status == TransactionStatus.FAILED
    assert failed.error_message.startswith("Transaction not found:")
    assert failed.retry_count == sync_config.max_retry_count


def test_pending_without_hash_waits(store, ledger, sync_config, lifecycle, owned_note):
    tx = lifecycle.create(owned_note.id, "DELETE", OWNER)

    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary.waiting == 1
    unchanged = store.get_tracked(tx.id)
    assert unchanged.status == TransactionStatus.PENDING
    assert unchanged.retry_count == 0
    assert ledger.detail_calls == []


def test_pending_without_hash_still_expires(store, ledger, sync_config, lifecycle, owned_note):
    tx = lifecycle.create(owned_note.id, "DELETE", OWNER)

    _worker(store, ledger, sync_config, lifecycle, offset=timedelta(minutes=30)).sweep()

    assert store.get_tracked(tx.id).error_message == EXPIRED_REASON


def test_expiry_restarts_at_retry(store, ledger, sync_config, lifecycle, owned_note):
    tx = _submitted(lifecycle, owned_note.id)
    tx.created_at = datetime.now(timezone.utc) - timedelta(hours=2)
    store.save_tracked(tx)
    lifecycle.fail(tx.id, "gave up")
    lifecycle.retry(tx.id)
    ledger.add_tx(None, HASH_A, 1000)

    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary.confirmed == 1
    assert store.get_tracked(tx.id).status == TransactionStatus.CONFIRMED


def test_errors_are_isolated_per_transaction(store, ledger, sync_config, lifecycle, owned_note):
    broken = _submitted(lifecycle, owned_note.id, tx_hash(1))
    healthy = _submitted(lifecycle, owned_note.id, tx_hash(2))
    ledger.detail_errors[tx_hash(1)] = RuntimeError("unexpected")
    ledger.add_tx(None, tx_hash(2), 1000)

    summary = _worker(store, ledger, sync_config, lifecycle).sweep()

    assert summary.errors == 1
    assert summary.confirmed == 1
    assert store.get_tracked(broken.id).status == TransactionStatus.MEMPOOL
    assert store.get_tracked(healthy.id).status == TransactionStatus.CONFIRMED


def test_terminal_transactions_are_not_swept(store, ledger, sync_config, lifecycle, owned_note):
    tx = lifecycle.create(owned_note.id, "DELETE", OWNER)
    lifecycle.fail(tx.id, "done")

    summary = _worker(store, ledger, sync_config, lifecycle, offset=timedelta(days=1)).sweep()

    assert summary == SyncSummary()
    assert store.get_tracked(tx.id).error_message == "done"


def test_disabled_worker_does_nothing(store, ledger, sync_config, lifecycle, owned_note):
    _submitted(lifecycle, owned_note.id)
    worker = _worker(store, ledger, sync_config, lifecycle)
    worker.set_enabled(False)

    assert worker.sweep() == SyncSummary()
    assert ledger.detail_calls == []

    worker.set_enabled(True)
    assert worker.sweep().checked == 1


def test_overlapping_sweep_returns_empty_summary(store, ledger, sync_config, lifecycle, owned_note):
    _submitted(lifecycle, owned_note.id)
    worker = _worker(store, ledger, sync_config, lifecycle)

    assert worker._sweep_lock.acquire(blocking=False)
    try:
        assert worker.sweep() == SyncSummary()
    finally:
        worker._sweep_lock.release()


def test_older_expiry_does_not_override_newer_confirmation(store, ledger, sync_config, lifecycle, owned_note):
    stale = lifecycle.create(owned_note.id, "UPDATE", OWNER, '{"title":"Old"}')
    latest = _submitted(lifecycle, owned_note.id)
    ledger.add_tx(None, HASH_A, 1000)

    assert _worker(store, ledger, sync_config, lifecycle).sweep().confirmed == 1
    summary = _worker(store, ledger, sync_config, lifecycle, offset=timedelta(minutes=30)).sweep()

    assert summary.expired == 1
    assert store.get_tracked(stale.id).status == TransactionStatus.FAILED
    assert store.get_tracked(latest.id).status == TransactionStatus.CONFIRMED
    note = store.get_note(owned_note.id)
    assert note.status == TransactionStatus.CONFIRMED
    assert note.on_chain is True


def test_confirming_older_transaction_keeps_newer_status(store, ledger, sync_config, lifecycle, owned_note):
    older = _submitted(lifecycle, owned_note.id)
    lifecycle.create(owned_note.id, "DELETE", OWNER)
    ledger.add_tx(None, HASH_A, 1000)

    _worker(store, ledger, sync_config, lifecycle).sweep()

    assert store.get_tracked(older.id).status == TransactionStatus.CONFIRMED
    note = store.get_note(owned_note.id)
    assert note.status == TransactionStatus.PENDING
    assert note.on_chain is True

"""Tests for the idempotency ledger and status store."""

from mail_dispatcher.ledger import IdempotencyLedger, StatusStore
from mail_dispatcher.models import TaskStatus


def test_check_and_mark_first_time_marks(logger):
    ledger = IdempotencyLedger(logger=logger)
    assert ledger.check_and_mark("t1") is False
    assert "t1" in ledger
    assert len(ledger) == 1


def test_check_and_mark_repeat_reports_handled(logger):
    ledger = IdempotencyLedger(logger=logger)
    ledger.check_and_mark("t1")
    assert ledger.check_and_mark("t1") is True
    assert ledger.check_and_mark("t1") is True
    assert len(ledger) == 1


def test_clear_is_logged(logger):
    ledger = IdempotencyLedger(logger=logger)
    ledger.check_and_mark("t1")
    ledger.check_and_mark("t2")
    ledger.clear()
    assert len(ledger) == 0
    assert ledger.check_and_mark("t1") is False
    assert logger.contains("clearing 2 ids")


def test_status_store_roundtrip():
    store = StatusStore()
    assert store.get("t1") is None
    store.set("t1", TaskStatus.PROCESSING)
    store.set("t1", TaskStatus.SENT)
    store.set("t2", "failed")
    assert store.get("t1") is TaskStatus.SENT
    assert store.get("t2") is TaskStatus.FAILED
    assert sorted(store.items()) == [("t1", TaskStatus.SENT), ("t2", TaskStatus.FAILED)]
    store.clear()
    assert len(store) == 0

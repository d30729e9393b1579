"""Tests for in-memory stores and analytics."""

import threading
from dataclasses import replace

import pytest

from x402_splitter.analytics import collect_stats, payment_history, usage_summary
from x402_splitter.errors import DuplicateSplitter, InvalidShares, SplitterNotFound, StaleUpdate
from x402_splitter.mechanisms.svm.splitter.types import (
    PaymentRecord,
    PaymentStatus,
    UsageEvent,
    compute_splits,
)
from x402_splitter.stores import (
    InMemoryPaymentRecordStore,
    InMemorySplitterStore,
    InMemoryUsageLog,
)


def record(signature, splitter_id="splitter", status=PaymentStatus.CONFIRMED, amount=1_000, created_at=0.0):
    r = PaymentRecord.from_splits(
        signature, splitter_id, "payer", compute_splits(amount, 70, 20, 10), status, "/r"
    )
    return replace(r, created_at=created_at)


class TestSplitterStore:
    """Test the in-memory splitter store."""

    def test_add_and_get(self, make_config):
        store = InMemorySplitterStore()
        config = make_config()

        store.add(config)

        assert store.get(config.splitter_id) == config
        assert store.exists(config.splitter_id)
        assert store.count() == 1

    def test_get_returns_copy(self, make_config):
        store = InMemorySplitterStore()
        config = make_config(ready=False)
        store.add(config)

        store.get(config.splitter_id).on_chain_ready = True

        assert not store.get(config.splitter_id).on_chain_ready

    def test_add_duplicate(self, make_config):
        store = InMemorySplitterStore()
        config = make_config()
        store.add(config)

        with pytest.raises(DuplicateSplitter):
            store.add(config)

    def test_mark_ready_requires_existing(self, make_config):
        with pytest.raises(SplitterNotFound):
            InMemorySplitterStore().mark_ready(make_config().splitter_id, "sig", 1)

    def test_mark_ready_keeps_first_signature(self, make_config):
        store = InMemorySplitterStore()
        config = make_config(ready=False)
        store.add(config)

        first = store.mark_ready(config.splitter_id, "first", 5)
        second = store.mark_ready(config.splitter_id, "second", 6)

        assert first.on_chain_ready
        assert second.initialization_signature == "first"
        assert store.get(config.splitter_id).shares_slot == 5

    def test_apply_shares_only_moves_forward(self, make_config):
        store = InMemorySplitterStore()
        config = make_config()
        store.add(config)

        updated = store.apply_shares(config.splitter_id, (50, 30, 20), 10)

        assert updated.shares == (50, 30, 20)
        assert updated.shares_slot == 10
        with pytest.raises(StaleUpdate):
            store.apply_shares(config.splitter_id, (60, 30, 10), 10)
        assert store.get(config.splitter_id).shares == (50, 30, 20)

    def test_apply_shares_validates(self, make_config):
        store = InMemorySplitterStore()
        config = make_config()
        store.add(config)

        with pytest.raises(InvalidShares):
            store.apply_shares(config.splitter_id, (60, 30, 30), 3)

    def test_list_all_newest_first(self, make_config):
        store = InMemorySplitterStore()
        older = replace(make_config(), created_at=1.0)
        newer = replace(make_config(), created_at=2.0)
        store.add(older)
        store.add(newer)

        assert [c.splitter_id for c in store.list_all()] == [newer.splitter_id, older.splitter_id]
        assert [c.splitter_id for c in store.list_all(1)] == [newer.splitter_id]


class TestPaymentRecordStore:
    """Test at-most-one record per signature."""

    def test_insert_if_absent(self):
        store = InMemoryPaymentRecordStore()
        first = record("sig")

        stored, created = store.insert_if_absent(first)
        again, created_again = store.insert_if_absent(record("sig", status=PaymentStatus.FAILED))

        assert created and stored == first
        assert not created_again and again == first

    def test_concurrent_inserts_create_one_record(self):
        store = InMemoryPaymentRecordStore()
        results = []

        def insert():
            results.append(store.insert_if_absent(record("sig"))[1])

        threads = [threading.Thread(target=insert) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(store.list_recent()) == 1

    def test_resolve_pending(self):
        store = InMemoryPaymentRecordStore()
        store.insert_if_absent(record("sig", status=PaymentStatus.PENDING))

        resolved = store.resolve("sig", PaymentStatus.FAILED, "boom")

        assert resolved.status is PaymentStatus.FAILED
        assert store.get("sig").error == "boom"

    def test_terminal_record_is_never_modified(self):
        store = InMemoryPaymentRecordStore()
        store.insert_if_absent(record("sig"))

        resolved = store.resolve("sig", PaymentStatus.FAILED, "late")

        assert resolved.status is PaymentStatus.CONFIRMED
        assert resolved.error is None

    def test_resolve_requires_terminal_status(self):
        store = InMemoryPaymentRecordStore()
        store.insert_if_absent(record("sig", status=PaymentStatus.PENDING))

        with pytest.raises(ValueError, match="non-terminal"):
            store.resolve("sig", PaymentStatus.PENDING)

    def test_resolve_unknown(self):
        with pytest.raises(KeyError):
            InMemoryPaymentRecordStore().resolve("missing", PaymentStatus.CONFIRMED)

    def test_list_by_splitter(self):
        store = InMemoryPaymentRecordStore()
        store.insert_if_absent(record("a", created_at=1.0))
        store.insert_if_absent(record("b", created_at=2.0))
        store.insert_if_absent(record("c", splitter_id="other"))

        assert [r.signature for r in store.list_by_splitter("splitter")] == ["b", "a"]
        assert [r.signature for r in store.list_by_splitter("splitter", 1)] == ["b"]


class TestUsageLog:
    def test_counts_requests_and_unique_payers(self):
        log = InMemoryUsageLog()
        log.append(UsageEvent("s", "/r", "alice", "sig1"))
        log.append(UsageEvent("s", "/r", "alice", "sig2"))
        log.append(UsageEvent("s", "/r", None, "sig3"))
        log.append(UsageEvent("other", "/r", "bob", "sig4"))

        assert log.count("s") == 3
        assert log.unique_payers("s") == 1
        assert len(log.events("other")) == 1


class TestAnalytics:
    """Test payment history and statistics."""

    def test_payment_history_limit(self):
        store = InMemoryPaymentRecordStore()
        for i in range(5):
            store.insert_if_absent(record(f"sig{i}", created_at=float(i)))

        history = payment_history(store, "splitter", limit=2)

        assert [r.signature for r in history] == ["sig4", "sig3"]

    def test_payment_history_rejects_bad_limit(self):
        with pytest.raises(ValueError, match="limit"):
            payment_history(InMemoryPaymentRecordStore(), "splitter", limit=0)

    def test_stats_count_only_confirmed(self, make_config):
        splitters = InMemorySplitterStore()
        splitters.add(make_config())
        splitters.add(make_config())
        records = InMemoryPaymentRecordStore()
        records.insert_if_absent(record("ok1", amount=1_000))
        records.insert_if_absent(record("ok2", amount=2_000))
        records.insert_if_absent(record("bad", status=PaymentStatus.FAILED, amount=5_000))

        stats = collect_stats(splitters, records)

        assert stats.total_splitters == 2
        assert stats.unique_merchants == 2
        assert stats.total_payments == 2
        assert stats.total_volume == 3_000
        assert {r.signature for r in stats.recent_payments} == {"ok1", "ok2"}

    def test_usage_summary(self):
        usage = InMemoryUsageLog()
        usage.append(UsageEvent("splitter", "/r", "alice", "ok"))
        records = InMemoryPaymentRecordStore()
        records.insert_if_absent(record("ok"))
        records.insert_if_absent(record("bad", status=PaymentStatus.FAILED))

        assert usage_summary(usage, records, "splitter") == {
            "totalRequests": 1,
            "totalPayments": 1,
            "uniquePayers": 1,
        }

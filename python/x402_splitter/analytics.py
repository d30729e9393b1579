"""Payment history and aggregate statistics."""

from dataclasses import dataclass, field

from .mechanisms.svm.splitter.types import PaymentRecord, PaymentStatus
from .stores import PaymentRecordStore, SplitterStore, UsageLog

DEFAULT_HISTORY_LIMIT = 50
RECENT_PAYMENTS_LIMIT = 10


@dataclass
class Stats:
    total_splitters: int
    total_payments: int
    unique_merchants: int
    unique_agents: int
    unique_platforms: int
    total_volume: int
    recent_payments: list[PaymentRecord] = field(default_factory=list)


def payment_history(
    records: PaymentRecordStore, splitter_id: str, limit: int = DEFAULT_HISTORY_LIMIT
) -> list[PaymentRecord]:
    """Return a splitter's payment records, newest first."""
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    return records.list_by_splitter(splitter_id, limit)


def collect_stats(splitters: SplitterStore, records: PaymentRecordStore) -> Stats:
    """Aggregate splitter and confirmed payment statistics.

    Failed and pending records are excluded from payment counts and volume.
    """
    configs = splitters.list_all()
    confirmed = [r for r in records.list_recent() if r.status is PaymentStatus.CONFIRMED]

    return Stats(
        total_splitters=len(configs),
        total_payments=len(confirmed),
        unique_merchants=len({c.merchant for c in configs}),
        unique_agents=len({c.agent for c in configs}),
        unique_platforms=len({c.platform for c in configs}),
        total_volume=sum(r.amount for r in confirmed),
        recent_payments=confirmed[:RECENT_PAYMENTS_LIMIT],
    )


def usage_summary(usage: UsageLog, records: PaymentRecordStore, splitter_id: str) -> dict[str, int]:
    """Per-splitter counters attached to protected responses."""
    confirmed = [
        r for r in records.list_by_splitter(splitter_id) if r.status is PaymentStatus.CONFIRMED
    ]
    return {
        "totalRequests": usage.count(splitter_id),
        "totalPayments": len(confirmed),
        "uniquePayers": usage.unique_payers(splitter_id),
    }

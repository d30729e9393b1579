"""Store interfaces and their in-memory implementations.

Stores are opened once at process start and passed to every component that
needs them. Locks guard only the in-memory mutation and are never held
across ledger I/O.
"""

import threading
import time
from dataclasses import replace
from typing import Protocol

from .errors import DuplicateSplitter, SplitterNotFound, StaleUpdate
from .mechanisms.svm.splitter.types import (
    PaymentRecord,
    PaymentStatus,
    SplitterConfig,
    UsageEvent,
)


class SplitterStore(Protocol):
    def get(self, splitter_id: str) -> SplitterConfig | None: ...

    def exists(self, splitter_id: str) -> bool: ...

    def add(self, config: SplitterConfig) -> None:
        """Insert a new config. Raises DuplicateSplitter if the id is taken."""
        ...

    def mark_ready(self, splitter_id: str, signature: str, slot: int | None) -> SplitterConfig:
        """Mark a config initialized on-chain by ``signature``.

        A config that is already ready is returned unchanged.
        Raises SplitterNotFound if absent.
        """
        ...

    def apply_shares(
        self, splitter_id: str, shares: tuple[int, int, int], slot: int
    ) -> SplitterConfig:
        """Apply shares confirmed on the ledger at ``slot``.

        Raises StaleUpdate unless ``slot`` is newer than the current shares,
        SplitterNotFound if absent.
        """
        ...

    def list_by_authority(self, authority: str) -> list[SplitterConfig]: ...

    def list_all(self, limit: int | None = None) -> list[SplitterConfig]: ...

    def count(self) -> int: ...


class PaymentRecordStore(Protocol):
    def get(self, signature: str) -> PaymentRecord | None: ...

    def insert_if_absent(self, record: PaymentRecord) -> tuple[PaymentRecord, bool]:
        """Atomically insert ``record`` unless its signature is already stored.

        Returns:
            The stored record and whether this call created it.
        """
        ...

    def resolve(
        self, signature: str, status: PaymentStatus, error: str | None = None
    ) -> PaymentRecord:
        """Move a pending record to a terminal status.

        A record that is already terminal is returned unchanged.
        """
        ...

    def list_by_splitter(self, splitter_id: str, limit: int | None = None) -> list[PaymentRecord]: ...

    def list_recent(self, limit: int | None = None) -> list[PaymentRecord]: ...


class UsageLog(Protocol):
    def append(self, event: UsageEvent) -> None: ...

    def count(self, splitter_id: str) -> int: ...

    def unique_payers(self, splitter_id: str) -> int: ...

    def events(self, splitter_id: str) -> list[UsageEvent]: ...


class InMemorySplitterStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._configs: dict[str, SplitterConfig] = {}

    def get(self, splitter_id: str) -> SplitterConfig | None:
        with self._lock:
            config = self._configs.get(splitter_id)
        return replace(config) if config is not None else None

    def exists(self, splitter_id: str) -> bool:
        with self._lock:
            return splitter_id in self._configs

    def add(self, config: SplitterConfig) -> None:
        with self._lock:
            if config.splitter_id in self._configs:
                raise DuplicateSplitter(f"splitter {config.splitter_id} already exists")
            self._configs[config.splitter_id] = replace(config)

    def mark_ready(self, splitter_id: str, signature: str, slot: int | None) -> SplitterConfig:
        with self._lock:
            config = self._require(splitter_id)
            if not config.on_chain_ready:
                config = replace(
                    config,
                    on_chain_ready=True,
                    initialization_signature=signature,
                    shares_slot=slot,
                    updated_at=time.time(),
                )
                self._configs[splitter_id] = config
            return replace(config)

    def apply_shares(
        self, splitter_id: str, shares: tuple[int, int, int], slot: int
    ) -> SplitterConfig:
        with self._lock:
            config = self._require(splitter_id)
            if config.shares_slot is not None and slot <= config.shares_slot:
                raise StaleUpdate(
                    f"shares of splitter {splitter_id} were set at slot {config.shares_slot}, "
                    f"update is from slot {slot}"
                )
            config = replace(config.with_shares(*shares), shares_slot=slot)
            self._configs[splitter_id] = config
            return replace(config)

    def _require(self, splitter_id: str) -> SplitterConfig:
        config = self._configs.get(splitter_id)
        if config is None:
            raise SplitterNotFound(f"splitter {splitter_id} not found")
        return config

    def list_by_authority(self, authority: str) -> list[SplitterConfig]:
        with self._lock:
            configs = [c for c in self._configs.values() if c.authority == authority]
        return [replace(c) for c in _newest_first(configs)]

    def list_all(self, limit: int | None = None) -> list[SplitterConfig]:
        with self._lock:
            configs = list(self._configs.values())
        return [replace(c) for c in _newest_first(configs)[:limit]]

    def count(self) -> int:
        with self._lock:
            return len(self._configs)


class InMemoryPaymentRecordStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, PaymentRecord] = {}

    def get(self, signature: str) -> PaymentRecord | None:
        with self._lock:
            return self._records.get(signature)

    def insert_if_absent(self, record: PaymentRecord) -> tuple[PaymentRecord, bool]:
        with self._lock:
            existing = self._records.get(record.signature)
            if existing is not None:
                return existing, False
            self._records[record.signature] = record
            return record, True

    def resolve(
        self, signature: str, status: PaymentStatus, error: str | None = None
    ) -> PaymentRecord:
        if not status.is_terminal:
            raise ValueError(f"cannot resolve to non-terminal status {status.value}")
        with self._lock:
            record = self._records.get(signature)
            if record is None:
                raise KeyError(signature)
            if record.status.is_terminal:
                return record
            resolved = replace(record, status=status, error=error)
            self._records[signature] = resolved
            return resolved

    def list_by_splitter(self, splitter_id: str, limit: int | None = None) -> list[PaymentRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.splitter_id == splitter_id]
        return _newest_first(records)[:limit]

    def list_recent(self, limit: int | None = None) -> list[PaymentRecord]:
        with self._lock:
            records = list(self._records.values())
        return _newest_first(records)[:limit]


class InMemoryUsageLog:
    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[UsageEvent] = []

    def append(self, event: UsageEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events(self, splitter_id: str) -> list[UsageEvent]:
        with self._lock:
            return [e for e in self._events if e.splitter_id == splitter_id]

    def count(self, splitter_id: str) -> int:
        return len(self.events(splitter_id))

    def unique_payers(self, splitter_id: str) -> int:
        return len({e.payer for e in self.events(splitter_id) if e.payer})


def _newest_first(items):
    return sorted(items, key=lambda item: item.created_at, reverse=True)

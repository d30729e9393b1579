"""Wiring of stores, ledger and protocol components.

Everything is created once at process start and shared by reference.
"""

from dataclasses import dataclass

from .config import SplitterSettings
from .coordinator import ProtocolCoordinator
from .mechanisms.svm.ledger import Ledger, SolanaRpcLedger
from .mechanisms.svm.splitter.builder import TransactionBuilder
from .mechanisms.svm.splitter.facilitator import ProofVerifier
from .mechanisms.svm.splitter.registry import SplitterRegistry
from .mechanisms.svm.splitter.server import ChallengeIssuer
from .stores import (
    InMemoryPaymentRecordStore,
    InMemorySplitterStore,
    InMemoryUsageLog,
    PaymentRecordStore,
    SplitterStore,
    UsageLog,
)


@dataclass
class SplitterServices:
    settings: SplitterSettings
    ledger: Ledger
    splitters: SplitterStore
    records: PaymentRecordStore
    usage: UsageLog
    registry: SplitterRegistry
    issuer: ChallengeIssuer
    builder: TransactionBuilder
    verifier: ProofVerifier
    coordinator: ProtocolCoordinator


def build_services(
    settings: SplitterSettings,
    ledger: Ledger | None = None,
    splitters: SplitterStore | None = None,
    records: PaymentRecordStore | None = None,
    usage: UsageLog | None = None,
    prices: dict[str, int] | None = None,
) -> SplitterServices:
    """Create every component from settings.

    Args:
        settings: Validated settings.
        ledger: Ledger to use; defaults to a Solana RPC ledger at ``settings.rpc_url``.
        splitters: Splitter store; defaults to in-memory.
        records: Payment record store; defaults to in-memory.
        usage: Usage log; defaults to in-memory.
        prices: Optional per-path prices overriding ``settings.payment_amount``.
    """
    ledger = ledger or SolanaRpcLedger(settings.rpc_url)
    splitters = splitters or InMemorySplitterStore()
    records = records or InMemoryPaymentRecordStore()
    usage = usage or InMemoryUsageLog()

    registry = SplitterRegistry(settings, splitters, ledger)
    issuer = ChallengeIssuer(settings, prices)
    builder = TransactionBuilder(settings, ledger)
    verifier = ProofVerifier(settings, ledger, records)
    coordinator = ProtocolCoordinator(registry, issuer, verifier, usage)

    return SplitterServices(
        settings=settings,
        ledger=ledger,
        splitters=splitters,
        records=records,
        usage=usage,
        registry=registry,
        issuer=issuer,
        builder=builder,
        verifier=verifier,
        coordinator=coordinator,
    )

"""Solana (SVM) splitter scheme.

Payments to a splitter account are divided among three fixed recipients
(merchant, agent, platform) by percentage, e.g. 70% merchant, 20% agent,
10% platform, in one call to the split program.
"""

from .constants import SCHEME_SPLIT
from .types import (
    PaymentRecord,
    PaymentStatus,
    SettlementMode,
    SplitAmounts,
    SplitterConfig,
    UsageEvent,
    compute_splits,
    validate_shares,
)

# Lazy imports: these modules depend on settings, which depend on this package
_LAZY = {
    "ChallengeIssuer": ".server",
    "TransactionBuilder": ".builder",
    "BuiltTransaction": ".builder",
    "ProofVerifier": ".facilitator",
    "VerificationOutcome": ".facilitator",
    "SplitterRegistry": ".registry",
    "SplitPaymentClient": ".client",
    "PaymentResult": ".client",
    "ClientState": ".client",
}

__all__ = [
    "SCHEME_SPLIT",
    # Types
    "PaymentRecord",
    "PaymentStatus",
    "SettlementMode",
    "SplitAmounts",
    "SplitterConfig",
    "UsageEvent",
    "compute_splits",
    "validate_shares",
    # Components
    *_LAZY,
]


def __getattr__(name: str):
    """Lazy import protocol components."""
    if name in _LAZY:
        import importlib

        module = importlib.import_module(_LAZY[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

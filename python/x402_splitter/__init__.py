"""x402 splitter: payment-gated API access settled as a three-way split on Solana.

Server-side:
    ```python
    from x402_splitter import SplitterSettings, build_services, create_app

    services = build_services(SplitterSettings.from_env())
    app = create_app(services)
    ```

Client-side:
    ```python
    from x402_splitter import KeypairSigner, SolanaRpcLedger, SplitPaymentClient

    client = SplitPaymentClient(http, KeypairSigner.from_base58(key), SolanaRpcLedger(rpc_url))
    result = await client.request("/api/demo/get-data", splitter_id)
    ```
"""

from .errors import (
    ChallengeLoop,
    DuplicateSplitter,
    InitializationFailed,
    InvalidAddress,
    InvalidAmount,
    InvalidChallenge,
    InvalidDerivation,
    InvalidRequest,
    InvalidShares,
    LedgerUnavailable,
    NotAuthority,
    PaymentFailed,
    ProofMismatch,
    ProofNotFound,
    SplitMismatch,
    SplitterError,
    SplitterNotFound,
    SplitterNotReady,
    StaleUpdate,
    UpdateFailed,
)

__version__ = "0.1.0"

_LAZY = {
    "SplitterSettings": ".config",
    "ProtocolCoordinator": ".coordinator",
    "AccessRequest": ".coordinator",
    "AccessDecision": ".coordinator",
    "AccessState": ".coordinator",
    "SplitterServices": ".services",
    "build_services": ".services",
    "create_app": ".http",
    "KeypairSigner": ".mechanisms.svm",
    "SolanaRpcLedger": ".mechanisms.svm",
    "FinalityPolicy": ".mechanisms.svm",
    "compute_splits": ".mechanisms.svm.splitter",
    "SplitterConfig": ".mechanisms.svm.splitter",
    "PaymentRecord": ".mechanisms.svm.splitter",
    "SplitPaymentClient": ".mechanisms.svm.splitter",
}

__all__ = [
    "__version__",
    # Errors
    "SplitterError",
    "InvalidShares",
    "InvalidAmount",
    "InvalidAddress",
    "InvalidDerivation",
    "InvalidRequest",
    "SplitterNotReady",
    "SplitterNotFound",
    "DuplicateSplitter",
    "NotAuthority",
    "InitializationFailed",
    "StaleUpdate",
    "UpdateFailed",
    "ProofNotFound",
    "PaymentFailed",
    "ProofMismatch",
    "LedgerUnavailable",
    "InvalidChallenge",
    "SplitMismatch",
    "ChallengeLoop",
    # Components
    *_LAZY,
]


def __getattr__(name: str):
    """Lazy import components so ``import x402_splitter`` stays light."""
    if name in _LAZY:
        import importlib

        module = importlib.import_module(_LAZY[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

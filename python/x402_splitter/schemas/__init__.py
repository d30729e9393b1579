"""Wire schemas for the splitter HTTP protocol."""

from .base import BaseSplitterModel, Network
from .payments import (
    BuildTransactionRequest,
    BuildTransactionResponse,
    ErrorBody,
    PaymentRequired,
    PaymentRequirements,
    PaymentView,
    ProtectedResourceRequest,
    RecipientDescriptor,
    SplitShare,
    SplitTable,
)
from .splitters import (
    CreateSplitterRequest,
    InitializeSplitterRequest,
    SplitterView,
    StatsView,
    UpdateSharesRequest,
    UpdateTransactionRequest,
)

__all__ = [
    "BaseSplitterModel",
    "Network",
    # Payments
    "RecipientDescriptor",
    "PaymentRequirements",
    "PaymentRequired",
    "BuildTransactionRequest",
    "BuildTransactionResponse",
    "SplitShare",
    "SplitTable",
    "ProtectedResourceRequest",
    "PaymentView",
    "ErrorBody",
    # Splitters
    "CreateSplitterRequest",
    "UpdateSharesRequest",
    "UpdateTransactionRequest",
    "InitializeSplitterRequest",
    "SplitterView",
    "StatsView",
]

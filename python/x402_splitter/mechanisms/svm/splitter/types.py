"""Types for the Solana splitter scheme."""

import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from ....errors import InvalidAmount, InvalidShares
from ..utils import parse_pubkey
from .constants import ROLES


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class SettlementMode(str, Enum):
    """How a settlement transaction moves value.

    ATOMIC calls the split program once; the program performs all three
    transfers or none. TRANSFERS emits three independent TransferChecked
    instructions and is kept for demos against mints the program does not
    serve.
    """

    ATOMIC = "atomic"
    TRANSFERS = "transfers"


def validate_shares(merchant: int, agent: int, platform: int) -> tuple[int, int, int]:
    """Check that three recipient percentages are integers in [0, 100] summing to 100.

    Raises:
        InvalidShares: If any share is out of range or the sum is not 100.
    """
    shares = (merchant, agent, platform)
    for role, share in zip(ROLES, shares):
        if isinstance(share, bool) or not isinstance(share, int):
            raise InvalidShares(f"{role} share must be an integer, got {share!r}")
        if share < 0 or share > 100:
            raise InvalidShares(f"{role} share must be 0-100, got {share}")
    total = sum(shares)
    if total != 100:
        raise InvalidShares(f"shares must sum to 100, got {total}")
    return shares


@dataclass(frozen=True)
class SplitAmounts:
    """Per-recipient amounts of one payment, in smallest units."""

    total: int
    merchant: int
    agent: int
    platform: int

    @property
    def distributed(self) -> int:
        return self.merchant + self.agent + self.platform

    @property
    def residual(self) -> int:
        """Floor-rounding remainder. Never transferred; stays with the payer."""
        return self.total - self.distributed

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.merchant, self.agent, self.platform)


def compute_splits(total: int, merchant: int, agent: int, platform: int) -> SplitAmounts:
    """Calculate per-recipient amounts from a total and three percentages.

    Each amount is ``floor(total * share / 100)``, which is what the split
    program computes on-chain. The residual is not assigned to anyone.

    Args:
        total: Total amount in smallest units (e.g. 1 USDC = 1_000_000).
        merchant: Merchant percentage.
        agent: Agent percentage.
        platform: Platform percentage.

    Returns:
        SplitAmounts for the three recipients.

    Raises:
        InvalidShares: If the percentages do not sum to 100.
        InvalidAmount: If total is negative or not an integer.
    """
    validate_shares(merchant, agent, platform)
    if isinstance(total, bool) or not isinstance(total, int):
        raise InvalidAmount(f"amount must be an integer, got {total!r}")
    if total < 0:
        raise InvalidAmount(f"amount must be non-negative, got {total}")

    return SplitAmounts(
        total=total,
        merchant=total * merchant // 100,
        agent=total * agent // 100,
        platform=total * platform // 100,
    )


@dataclass
class SplitterConfig:
    """Off-ledger record of a splitter account."""

    splitter_id: str
    authority: str
    merchant: str
    agent: str
    platform: str
    merchant_share: int
    agent_share: int
    platform_share: int
    on_chain_ready: bool = False
    initialization_signature: str | None = None
    # Ledger slot of the transaction that set the current shares
    shares_slot: int | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float | None = None

    @property
    def shares(self) -> tuple[int, int, int]:
        return (self.merchant_share, self.agent_share, self.platform_share)

    @property
    def recipients(self) -> tuple[str, str, str]:
        return (self.merchant, self.agent, self.platform)

    def validate(self) -> None:
        """Validate addresses and shares.

        Raises:
            InvalidAddress: If any participant address is malformed.
            InvalidShares: If shares do not sum to 100.
        """
        parse_pubkey(self.splitter_id, "splitter id")
        parse_pubkey(self.authority, "authority")
        for role, address in zip(ROLES, self.recipients):
            parse_pubkey(address, role)
        validate_shares(*self.shares)

    def compute_splits(self, total: int) -> SplitAmounts:
        return compute_splits(total, *self.shares)

    def with_shares(self, merchant: int, agent: int, platform: int) -> "SplitterConfig":
        validate_shares(merchant, agent, platform)
        return replace(
            self,
            merchant_share=merchant,
            agent_share=agent,
            platform_share=platform,
            updated_at=time.time(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PaymentRecord:
    """Verification result of one payment proof.

    Keyed by ``signature``; at most one record exists per signature and a
    terminal record is never modified.
    """

    signature: str
    splitter_id: str
    payer: str | None
    amount: int
    merchant_amount: int
    agent_amount: int
    platform_amount: int
    status: PaymentStatus
    resource: str
    error: str | None = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_splits(
        cls,
        signature: str,
        splitter_id: str,
        payer: str | None,
        splits: SplitAmounts,
        status: PaymentStatus,
        resource: str,
        error: str | None = None,
    ) -> "PaymentRecord":
        return cls(
            signature=signature,
            splitter_id=splitter_id,
            payer=payer,
            amount=splits.total,
            merchant_amount=splits.merchant,
            agent_amount=splits.agent,
            platform_amount=splits.platform,
            status=status,
            resource=resource,
            error=error,
        )

    @property
    def is_confirmed(self) -> bool:
        return self.status is PaymentStatus.CONFIRMED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class UsageEvent:
    """Append-only fact that a proof granted access to a resource."""

    splitter_id: str
    resource: str
    payer: str | None
    signature: str
    timestamp: float = field(default_factory=time.time)

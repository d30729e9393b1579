"""Payment challenge and settlement wire types."""

from typing import Literal

from pydantic import Field, field_validator

from .base import BaseSplitterModel, Network

Role = Literal["merchant", "agent", "platform"]


class RecipientDescriptor(BaseSplitterModel):
    """One recipient of a split payment.

    Attributes:
        role: Recipient role.
        address: Recipient wallet address (base58).
        share: Percentage of the total.
        amount: ``floor(total * share / 100)`` in smallest units.
    """

    role: Role
    address: str
    share: int = Field(ge=0, le=100)
    amount: int = Field(ge=0)


class PaymentRequirements(BaseSplitterModel):
    """One accepted way of paying for a resource.

    Attributes:
        scheme: Payment scheme identifier ("split").
        network: CAIP-2 network identifier.
        asset: SPL token mint address.
        pay_to: Splitter account address (the settlement target).
        max_amount_required: Total amount in smallest units, as an integer string.
        resource: URI of the protected resource.
        description: Optional human-readable description.
        max_timeout_seconds: Maximum time for payment validity.
        program_id: Split program address.
        recipients: Exactly three recipient descriptors.
        residual: Floor-rounding remainder kept by the payer.
    """

    scheme: Literal["split"] = "split"
    network: Network
    asset: str
    pay_to: str
    max_amount_required: str
    resource: str
    description: str | None = None
    max_timeout_seconds: int = 300
    program_id: str
    recipients: list[RecipientDescriptor] = Field(min_length=3, max_length=3)
    residual: int = Field(default=0, ge=0)

    @field_validator("max_amount_required")
    @classmethod
    def _integer_string(cls, v: str) -> str:
        if not (v.isascii() and v.isdigit()):
            raise ValueError(f"maxAmountRequired must be an integer string, got {v!r}")
        return v

    @property
    def amount(self) -> int:
        return int(self.max_amount_required)

    def recipient(self, role: str) -> RecipientDescriptor:
        for r in self.recipients:
            if r.role == role:
                return r
        raise KeyError(role)


class PaymentRequired(BaseSplitterModel):
    """402 response body.

    The initial challenge carries only ``protocol_version`` and ``accepts``.
    A denial of a presented proof additionally carries the error fields.

    Attributes:
        protocol_version: Protocol version (always 1).
        accepts: Accepted payment requirements.
        error: Machine-readable denial reason.
        message: Human-readable denial message.
        retryable: Whether the same proof may succeed later.
        rejected_proof: The proof that was denied.
    """

    protocol_version: Literal[1] = 1
    accepts: list[PaymentRequirements] = Field(min_length=1)
    error: str | None = None
    message: str | None = None
    retryable: bool | None = None
    rejected_proof: str | None = None

    @property
    def is_denial(self) -> bool:
        return self.error is not None


class BuildTransactionRequest(BaseSplitterModel):
    splitter_id: str
    payer_identity: str
    amount: int = Field(gt=0)


class SplitShare(BaseSplitterModel):
    address: str
    amount: int
    percentage: int


class SplitTable(BaseSplitterModel):
    merchant: SplitShare
    agent: SplitShare
    platform: SplitShare


class BuildTransactionResponse(BaseSplitterModel):
    """Unsigned settlement transaction and the split it applies.

    Attributes:
        transaction: Base64 legacy transaction with no signatures and a zeroed blockhash.
        splits: Split table recomputed from the stored config.
        mode: Settlement mode in effect ("atomic" or "transfers").
    """

    transaction: str
    splits: SplitTable
    mode: Literal["atomic", "transfers"]


class ProtectedResourceRequest(BaseSplitterModel):
    splitter_id: str


class PaymentView(BaseSplitterModel):
    signature: str
    splitter_id: str
    payer: str | None = None
    amount: int
    merchant_amount: int
    agent_amount: int
    platform_amount: int
    status: Literal["pending", "confirmed", "failed"]
    resource: str
    error: str | None = None
    created_at: float


class ErrorBody(BaseSplitterModel):
    error: str
    message: str
    retryable: bool = False

"""Splitter management wire types."""

from pydantic import Field

from .base import BaseSplitterModel
from .payments import PaymentView


class CreateSplitterRequest(BaseSplitterModel):
    """Body of ``POST /api/splitter/create``.

    ``splitter_id`` is optional; when present it must equal the address
    derived from ``authority``.
    """

    authority: str
    merchant: str
    agent: str
    platform: str
    merchant_share: int
    agent_share: int
    platform_share: int
    splitter_id: str | None = None
    initialization_signature: str | None = None


class UpdateTransactionRequest(BaseSplitterModel):
    """Body of ``POST /api/splitter/{id}/update-tx``."""

    merchant_share: int
    agent_share: int
    platform_share: int


class UpdateSharesRequest(BaseSplitterModel):
    """Body of ``POST /api/splitter/{id}/update``.

    ``signature`` names the confirmed ``update_shares`` transaction the
    authority signed; the new shares are stored only after it checks out.
    """

    authority: str
    merchant_share: int
    agent_share: int
    platform_share: int
    signature: str = Field(min_length=1)


class InitializeSplitterRequest(BaseSplitterModel):
    signature: str = Field(min_length=1)


class SplitterView(BaseSplitterModel):
    splitter_id: str
    authority: str
    merchant: str
    agent: str
    platform: str
    merchant_share: int
    agent_share: int
    platform_share: int
    on_chain_ready: bool
    initialization_signature: str | None = None
    shares_slot: int | None = None
    created_at: float
    updated_at: float | None = None


class StatsView(BaseSplitterModel):
    total_splitters: int
    total_payments: int
    unique_merchants: int
    unique_agents: int
    unique_platforms: int
    total_volume: int
    recent_payments: list[PaymentView]

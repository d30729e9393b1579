"""Splitter configuration registry.

Splitter ids are program-derived addresses of their authority, so a record
can only be created for the id its authority derives to. A record is offered
as a payment target only after its on-chain initialization is confirmed, and
its shares change only after a confirmed ``update_shares`` transaction signed
by the authority.
"""

import logging
import re

from ....config import SplitterSettings
from ....errors import (
    InitializationFailed,
    InvalidDerivation,
    InvalidShares,
    NotAuthority,
    ProofNotFound,
    SplitterError,
    SplitterNotFound,
    SplitterNotReady,
    UpdateFailed,
)
from ....schemas import CreateSplitterRequest, UpdateSharesRequest
from ....stores import SplitterStore
from ..ledger import FinalityPolicy, Ledger, LedgerTransaction, await_finality
from ..utils import derive_splitter_address, parse_pubkey
from .constants import (
    INITIALIZE_SPLITTER_DISCRIMINATOR,
    PROGRAM_ERROR_INVALID_SHARES,
    ROLES,
    UPDATE_SHARES_DISCRIMINATOR,
)
from .types import SplitterConfig, validate_shares

logger = logging.getLogger(__name__)

# Ledger errors render custom program errors as "Custom(<code>)"
CUSTOM_ERROR_RE = re.compile(r"Custom\((\d+)\)")


class SplitterRegistry:
    """Create, read, update and initialize splitter configs."""

    def __init__(
        self,
        settings: SplitterSettings,
        store: SplitterStore,
        ledger: Ledger,
        policy: FinalityPolicy | None = None,
    ):
        self._settings = settings
        self._store = store
        self._ledger = ledger
        self._policy = policy or settings.finality_policy

    def derive_address(self, authority: str) -> str:
        return derive_splitter_address(authority, self._settings.program_id)

    async def create(self, request: CreateSplitterRequest) -> SplitterConfig:
        """Create a splitter record.

        Args:
            request: Participants, shares and an optional initialization proof.

        Returns:
            The stored config.

        Raises:
            InvalidAddress: If any participant address is malformed.
            InvalidShares: If shares are out of range or do not sum to 100.
            InvalidDerivation: If a supplied id differs from the derived one.
            DuplicateSplitter: If the authority already has a splitter.
            InitializationFailed: If the initialization proof does not check out.
        """
        # 1. Validate participants and shares
        parse_pubkey(request.authority, "authority")
        for role in ROLES:
            parse_pubkey(getattr(request, role), role)
        validate_shares(request.merchant_share, request.agent_share, request.platform_share)

        # 2. Recompute the id from the authority
        splitter_id = self.derive_address(request.authority)
        if request.splitter_id is not None and request.splitter_id != splitter_id:
            raise InvalidDerivation(
                f"splitter id {request.splitter_id} does not derive from authority "
                f"{request.authority} (expected {splitter_id})"
            )

        config = SplitterConfig(
            splitter_id=splitter_id,
            authority=request.authority,
            merchant=request.merchant,
            agent=request.agent,
            platform=request.platform,
            merchant_share=request.merchant_share,
            agent_share=request.agent_share,
            platform_share=request.platform_share,
        )

        # 3. Confirm initialization before the record is ever visible as ready
        if request.initialization_signature:
            tx = await self._check_initialization(config, request.initialization_signature)
            config.on_chain_ready = True
            config.initialization_signature = request.initialization_signature
            config.shares_slot = tx.slot

        self._store.add(config)
        logger.info(
            "Created splitter %s for authority %s (%s/%s/%s, ready=%s)",
            splitter_id,
            request.authority,
            *config.shares,
            config.on_chain_ready,
        )
        return config

    def get(self, splitter_id: str) -> SplitterConfig:
        config = self._store.get(splitter_id)
        if config is None:
            raise SplitterNotFound(f"splitter {splitter_id} not found")
        return config

    def exists(self, splitter_id: str) -> bool:
        return self._store.exists(splitter_id)

    def list_by_authority(self, authority: str) -> list[SplitterConfig]:
        parse_pubkey(authority, "authority")
        return self._store.list_by_authority(authority)

    def list_all(self, limit: int = 100) -> list[SplitterConfig]:
        return self._store.list_all(limit)

    async def update_shares(self, splitter_id: str, request: UpdateSharesRequest) -> SplitterConfig:
        """Store new shares once the authority's ``update_shares`` transaction is confirmed.

        Raises:
            SplitterNotFound: If the splitter does not exist.
            SplitterNotReady: If the splitter is not initialized on-chain.
            NotAuthority: If the authority does not own the splitter or did not sign.
            InvalidShares: If the new shares do not sum to 100.
            UpdateFailed: If the transaction failed or does not apply these shares.
            StaleUpdate: If newer shares have already been applied.
            LedgerUnavailable: If the ledger cannot be reached.
        """
        config = self.get(splitter_id)
        if request.authority != config.authority:
            raise NotAuthority(f"{request.authority} is not the authority of splitter {splitter_id}")
        if not config.on_chain_ready:
            raise SplitterNotReady(f"splitter {splitter_id} is not initialized on-chain")
        shares = validate_shares(request.merchant_share, request.agent_share, request.platform_share)

        tx = await self._confirmed(request.signature, "update", UpdateFailed)
        if config.authority not in tx.signers:
            raise NotAuthority(
                f"update transaction {request.signature} is not signed by authority {config.authority}"
            )
        if self._settings.strict_proof_verification:
            # update_shares data: discriminator | merchant, agent, platform shares (u8)
            expected_data = UPDATE_SHARES_DISCRIMINATOR + bytes(shares)
            expected_accounts = [config.splitter_id, config.authority]
            if not any(
                ix.data == expected_data and ix.accounts[:2] == expected_accounts
                for ix in tx.instructions_for(self._settings.program_id)
            ):
                raise UpdateFailed(
                    f"transaction {request.signature} does not set splitter {splitter_id} "
                    f"shares to {'/'.join(map(str, shares))}"
                )

        # Applied under the store lock; a newer confirmed update is never overwritten
        updated = self._store.apply_shares(splitter_id, shares, tx.slot or 0)
        logger.info(
            "Updated splitter %s shares to %s/%s/%s (%s)",
            splitter_id,
            *updated.shares,
            request.signature,
        )
        return updated

    async def mark_initialized(self, splitter_id: str, signature: str) -> SplitterConfig:
        """Mark a splitter ready once its initialization transaction is confirmed.

        Raises:
            SplitterNotFound: If the splitter does not exist.
            InitializationFailed: If the transaction failed or does not initialize this splitter.
            InvalidShares: If the program rejected the initialization's shares.
            LedgerUnavailable: If the ledger cannot be reached.
        """
        config = self.get(splitter_id)
        if config.on_chain_ready:
            return config

        tx = await self._check_initialization(config, signature)
        # Re-read under the store lock; a concurrent initialization keeps its signature
        ready = self._store.mark_ready(splitter_id, signature, tx.slot)
        if ready.initialization_signature == signature:
            logger.info("Splitter %s initialized on-chain by %s", splitter_id, signature)
        return ready

    async def _check_initialization(self, config: SplitterConfig, signature: str) -> LedgerTransaction:
        tx = await self._confirmed(signature, "initialization", InitializationFailed)
        if not self._settings.strict_proof_verification:
            return tx

        # initialize_splitter data: discriminator | merchant, agent, platform shares (u8)
        expected_data = INITIALIZE_SPLITTER_DISCRIMINATOR + bytes(config.shares)
        for ix in tx.instructions_for(self._settings.program_id):
            if (
                ix.data == expected_data
                and ix.accounts[:2] == [config.splitter_id, config.authority]
                and config.authority in tx.signers
            ):
                return tx
        raise InitializationFailed(
            f"transaction {signature} does not initialize splitter {config.splitter_id}"
        )

    async def _confirmed(
        self, signature: str, action: str, failure: type[SplitterError]
    ) -> LedgerTransaction:
        """Wait for a management transaction and require that it succeeded."""
        try:
            tx = await await_finality(self._ledger, signature, self._policy)
        except ProofNotFound as e:
            raise failure(f"{action} transaction {signature} not found") from e

        if not tx.success:
            if program_error_code(tx.error) == PROGRAM_ERROR_INVALID_SHARES:
                raise InvalidShares(
                    f"{action} transaction {signature} was rejected by the split program: "
                    "shares must sum to 100"
                )
            raise failure(f"{action} transaction {signature} failed: {tx.error}")
        return tx


def program_error_code(error: str | None) -> int | None:
    """Extract the custom program error code from a ledger error, if any."""
    if not error:
        return None
    match = CUSTOM_ERROR_RE.search(error)
    return int(match.group(1)) if match else None

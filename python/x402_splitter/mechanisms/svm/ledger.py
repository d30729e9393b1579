"""Ledger protocol and its Solana RPC implementation.

The protocol layer needs four things from the ledger: whether an account
exists, the execution outcome of a transaction, a way to submit a signed
transaction, and a recent blockhash to sign against.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.signature import Signature

from ...errors import LedgerUnavailable, PaymentFailed, ProofNotFound
from .utils import parse_pubkey, validate_svm_signature

logger = logging.getLogger(__name__)

LEDGER_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError, OSError)


@dataclass(frozen=True)
class LedgerInstruction:
    """A decoded top-level instruction of a ledger transaction."""

    program_id: str
    accounts: list[str]
    data: bytes


@dataclass(frozen=True)
class LedgerTransaction:
    """Execution outcome of a finalized ledger transaction."""

    signature: str
    success: bool
    error: str | None = None
    slot: int | None = None
    account_keys: list[str] = field(default_factory=list)
    signers: list[str] = field(default_factory=list)
    instructions: list[LedgerInstruction] = field(default_factory=list)

    def instructions_for(self, program_id: str) -> list[LedgerInstruction]:
        return [ix for ix in self.instructions if ix.program_id == program_id]


class Ledger(Protocol):
    """Ledger operations the splitter protocol depends on."""

    async def account_exists(self, address: str) -> bool:
        """Return whether an account exists at ``address``."""
        ...

    async def get_transaction(self, signature: str) -> LedgerTransaction | None:
        """Return the outcome of a transaction, or None if not (yet) final."""
        ...

    async def submit(self, raw_transaction: bytes) -> str:
        """Submit a signed transaction and return its signature."""
        ...

    async def latest_blockhash(self) -> Hash:
        """Return a recent blockhash to sign against."""
        ...


class SolanaRpcLedger:
    """Ledger backed by a Solana JSON-RPC endpoint.

    Transport and RPC failures surface as ``LedgerUnavailable``.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: Commitment = Confirmed,
        client: AsyncClient | None = None,
    ):
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._client = client or AsyncClient(rpc_url, commitment=commitment)

    async def close(self) -> None:
        await self._client.close()

    async def account_exists(self, address: str) -> bool:
        pubkey = parse_pubkey(address)
        logger.debug("Checking account %s", address)
        try:
            resp = await self._client.get_account_info(pubkey, commitment=self._commitment)
        except LEDGER_ERRORS as e:
            raise LedgerUnavailable(f"account lookup failed for {address}: {e}") from e
        return resp.value is not None

    async def get_transaction(self, signature: str) -> LedgerTransaction | None:
        if not validate_svm_signature(signature):
            return None
        try:
            sig = Signature.from_string(signature)
        except ValueError:
            return None

        logger.debug("Fetching transaction %s", signature)
        try:
            resp = await self._client.get_transaction(
                sig,
                encoding="base64",
                commitment=self._commitment,
                max_supported_transaction_version=0,
            )
        except LEDGER_ERRORS as e:
            raise LedgerUnavailable(f"transaction lookup failed for {signature}: {e}") from e

        if resp.value is None:
            return None
        return _decode_transaction(signature, resp.value)

    async def submit(self, raw_transaction: bytes) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=self._commitment)
        try:
            resp = await self._client.send_raw_transaction(raw_transaction, opts=opts)
        except RPCException as e:
            # Preflight simulation rejected the transaction
            raise PaymentFailed(f"transaction rejected: {e}") from e
        except (SolanaRpcException, httpx.HTTPError, OSError) as e:
            raise LedgerUnavailable(f"submit failed: {e}") from e
        return str(resp.value)

    async def latest_blockhash(self) -> Hash:
        try:
            resp = await self._client.get_latest_blockhash(commitment=self._commitment)
        except LEDGER_ERRORS as e:
            raise LedgerUnavailable(f"blockhash lookup failed: {e}") from e
        return resp.value.blockhash


def _decode_transaction(signature: str, confirmed) -> LedgerTransaction:
    """Flatten an RPC ``getTransaction`` result into a LedgerTransaction."""
    meta = confirmed.transaction.meta
    tx = confirmed.transaction.transaction
    message = tx.message

    account_keys = [str(k) for k in message.account_keys]
    # v0 messages append lookup-table addresses after the static keys
    loaded = getattr(meta, "loaded_addresses", None) if meta is not None else None
    if loaded is not None:
        account_keys += [str(k) for k in loaded.writable]
        account_keys += [str(k) for k in loaded.readonly]

    instructions = []
    for ix in message.instructions:
        instructions.append(
            LedgerInstruction(
                program_id=account_keys[ix.program_id_index],
                accounts=[account_keys[i] for i in bytes(ix.accounts)],
                data=bytes(ix.data),
            )
        )

    err = meta.err if meta is not None else None
    return LedgerTransaction(
        signature=signature,
        success=meta is not None and err is None,
        error=str(err) if err is not None else ("missing_meta" if meta is None else None),
        slot=confirmed.slot,
        account_keys=account_keys,
        signers=account_keys[: message.header.num_required_signatures],
        instructions=instructions,
    )


@dataclass(frozen=True)
class FinalityPolicy:
    """Bounded polling for ledger finality.

    Attributes:
        max_attempts: Number of lookups before giving up.
        interval_seconds: Delay after the first unsuccessful lookup.
        backoff: Multiplier applied to the delay after each attempt.
    """

    max_attempts: int = 3
    interval_seconds: float = 1.0
    backoff: float = 1.5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.interval_seconds < 0:
            raise ValueError(f"interval_seconds must be >= 0, got {self.interval_seconds}")


async def await_finality(
    ledger: Ledger,
    signature: str,
    policy: FinalityPolicy = FinalityPolicy(),
) -> LedgerTransaction:
    """Poll the ledger until the transaction is final or attempts run out.

    Args:
        ledger: Ledger to query.
        signature: Transaction signature.
        policy: Polling bounds.

    Returns:
        The final transaction outcome (successful or failed).

    Raises:
        ProofNotFound: If the transaction is not final after ``policy.max_attempts``.
        LedgerUnavailable: If the ledger cannot be reached.
    """
    delay = policy.interval_seconds
    for attempt in range(1, policy.max_attempts + 1):
        tx = await ledger.get_transaction(signature)
        if tx is not None:
            return tx
        if attempt < policy.max_attempts:
            logger.debug(
                "Transaction %s not final (attempt %s/%s), retrying in %.2fs",
                signature,
                attempt,
                policy.max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            delay *= policy.backoff

    raise ProofNotFound(f"transaction {signature} not found after {policy.max_attempts} attempts")

"""Shared fixtures: an in-memory ledger and pre-wired services."""

import asyncio
import base64
from collections import Counter

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction import Transaction

from x402_splitter.config import SplitterSettings
from x402_splitter.mechanisms.svm.ledger import LedgerInstruction, LedgerTransaction
from x402_splitter.mechanisms.svm.signers import KeypairSigner
from x402_splitter.mechanisms.svm.splitter.types import SplitterConfig
from x402_splitter.mechanisms.svm.utils import derive_splitter_address
from x402_splitter.services import build_services


class FakeLedger:
    """In-memory ledger.

    Submitted transactions succeed and become visible immediately unless
    ``hidden_lookups`` says how many lookups should miss first. Each new
    transaction lands in the next slot.
    """

    def __init__(self):
        self.accounts: set[str] = set()
        self.transactions: dict[str, LedgerTransaction] = {}
        self.submitted: list[Transaction] = []
        self.lookups: Counter = Counter()
        self.hidden_lookups: dict[str, int] = {}
        self.fail_with: Exception | None = None
        self.fail_next_submit: str | None = None
        self.slot = 0

    async def account_exists(self, address: str) -> bool:
        if self.fail_with:
            raise self.fail_with
        return address in self.accounts

    async def get_transaction(self, signature: str) -> LedgerTransaction | None:
        self.lookups[signature] += 1
        # Yield so concurrent verifications interleave
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        if self.hidden_lookups.get(signature, 0) > 0:
            self.hidden_lookups[signature] -= 1
            return None
        return self.transactions.get(signature)

    async def submit(self, raw_transaction: bytes) -> str:
        if self.fail_with:
            raise self.fail_with
        tx = Transaction.from_bytes(raw_transaction)
        self.submitted.append(tx)
        signature = str(tx.signatures[0])
        error = self.fail_next_submit
        self.fail_next_submit = None
        self.slot += 1
        self.transactions[signature] = decode(tx, signature, error, self.slot)
        return signature

    async def latest_blockhash(self) -> Hash:
        return Hash.new_unique()

    def add_transaction(
        self,
        instructions: list[LedgerInstruction] | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> str:
        signature = str(Signature.new_unique())
        self.slot += 1
        self.transactions[signature] = LedgerTransaction(
            signature=signature,
            success=success,
            error=error if not success else None,
            slot=self.slot,
            instructions=instructions or [],
        )
        return signature


def decode(
    tx: Transaction, signature: str, error: str | None = None, slot: int = 1
) -> LedgerTransaction:
    keys = [str(k) for k in tx.message.account_keys]
    instructions = [
        LedgerInstruction(
            program_id=keys[ix.program_id_index],
            accounts=[keys[i] for i in bytes(ix.accounts)],
            data=bytes(ix.data),
        )
        for ix in tx.message.instructions
    ]
    return LedgerTransaction(
        signature=signature,
        success=error is None,
        error=error,
        slot=slot,
        account_keys=keys,
        signers=keys[: tx.message.header.num_required_signatures],
        instructions=instructions,
    )


def sign_and_submit(ledger: FakeLedger, transaction_b64: str, signer: KeypairSigner) -> str:
    """Sign a base64 unsigned transaction and submit it to the fake ledger."""
    tx = Transaction.from_bytes(base64.b64decode(transaction_b64))
    blockhash = asyncio.run(ledger.latest_blockhash())
    signer.sign_transaction(tx, blockhash)
    return asyncio.run(ledger.submit(bytes(tx)))


def address() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def settings():
    s = SplitterSettings(
        rpc_url="http://127.0.0.1:8899",
        network="solana-devnet",
        finality_max_attempts=2,
        finality_poll_seconds=0,
    )
    s.validate()
    return s


@pytest.fixture
def services(settings, ledger):
    return build_services(settings, ledger=ledger)


@pytest.fixture
def payer():
    return KeypairSigner(Keypair())


@pytest.fixture
def make_config(settings):
    """Factory for splitter configs with fresh participants."""

    def _make(shares=(70, 20, 10), ready=True, authority=None) -> SplitterConfig:
        authority = authority or address()
        return SplitterConfig(
            splitter_id=derive_splitter_address(authority, settings.program_id),
            authority=authority,
            merchant=address(),
            agent=address(),
            platform=address(),
            merchant_share=shares[0],
            agent_share=shares[1],
            platform_share=shares[2],
            on_chain_ready=ready,
        )

    return _make


@pytest.fixture
def ready_config(services, make_config):
    """A 70/20/10 splitter stored and ready."""
    config = make_config()
    services.splitters.add(config)
    return config


@pytest.fixture
def settle(ledger):
    """Sign and submit a built transaction; returns the proof signature."""

    def _settle(transaction_b64: str, signer: KeypairSigner) -> str:
        return sign_and_submit(ledger, transaction_b64, signer)

    return _settle


@pytest.fixture
def decode_tx():
    """Decode a base64 transaction into a LedgerTransaction."""

    def _decode(transaction_b64: str) -> LedgerTransaction:
        tx = Transaction.from_bytes(base64.b64decode(transaction_b64))
        return decode(tx, str(tx.signatures[0]))

    return _decode

"""Tests for the Solana RPC ledger and finality polling."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction

from x402_splitter.errors import LedgerUnavailable, PaymentFailed, ProofNotFound
from x402_splitter.mechanisms.svm.ledger import (
    FinalityPolicy,
    SolanaRpcLedger,
    await_finality,
)
from x402_splitter.mechanisms.svm.splitter.builder import split_payment_instruction


class StubRpcClient:
    """Minimal stand-in for solana's AsyncClient."""

    def __init__(self, accounts=(), transactions=None, error=None):
        self.accounts = set(accounts)
        self.transactions = transactions or {}
        self.error = error
        self.calls = []

    async def get_account_info(self, pubkey, commitment=None):
        self.calls.append("get_account_info")
        if self.error:
            raise self.error
        return SimpleNamespace(value=object() if str(pubkey) in self.accounts else None)

    async def get_transaction(self, sig, encoding=None, commitment=None, max_supported_transaction_version=None):
        self.calls.append("get_transaction")
        if self.error:
            raise self.error
        return SimpleNamespace(value=self.transactions.get(str(sig)))

    async def send_raw_transaction(self, raw, opts=None):
        self.calls.append("send_raw_transaction")
        if self.error:
            raise self.error
        return SimpleNamespace(value=Transaction.from_bytes(raw).signatures[0])

    async def get_latest_blockhash(self, commitment=None):
        if self.error:
            raise self.error
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def close(self):
        pass


def confirmed(tx: Transaction, err=None):
    meta = SimpleNamespace(err=err, loaded_addresses=None)
    return SimpleNamespace(slot=42, transaction=SimpleNamespace(meta=meta, transaction=tx))


@pytest.fixture
def signed_split(settings, make_config):
    """A signed split_payment transaction and its signature."""
    payer = Keypair()
    config = make_config()
    ix = split_payment_instruction(
        settings.program_id,
        config.splitter_id,
        str(payer.pubkey()),
        str(Keypair().pubkey()),
        (str(Keypair().pubkey()), str(Keypair().pubkey()), str(Keypair().pubkey())),
        1_000_000,
    )
    tx = Transaction.new_unsigned(Message([ix], payer.pubkey()))
    tx.sign([payer], Hash.new_unique())
    return tx, str(tx.signatures[0]), config


class TestSolanaRpcLedger:
    """Test RPC result mapping."""

    def test_account_exists(self):
        present = str(Keypair().pubkey())
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient(accounts=[present]))

        assert asyncio.run(ledger.account_exists(present))
        assert not asyncio.run(ledger.account_exists(str(Keypair().pubkey())))

    def test_get_transaction_decodes_instructions(self, settings, signed_split):
        tx, signature, config = signed_split
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient(transactions={signature: confirmed(tx)}))

        result = asyncio.run(ledger.get_transaction(signature))

        assert result.success
        assert result.slot == 42
        assert result.signers == [result.account_keys[0]]
        (ix,) = result.instructions_for(settings.program_id)
        assert ix.accounts[0] == config.splitter_id
        assert ix.data[8:] == (1_000_000).to_bytes(8, "little")

    def test_get_transaction_reports_failure(self, signed_split):
        tx, signature, _ = signed_split
        stub = StubRpcClient(transactions={signature: confirmed(tx, err="InstructionError")})

        result = asyncio.run(SolanaRpcLedger("http://rpc", client=stub).get_transaction(signature))

        assert not result.success
        assert result.error == "InstructionError"

    def test_unknown_transaction_is_none(self):
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient())

        assert asyncio.run(ledger.get_transaction(str(Signature.new_unique()))) is None

    def test_malformed_signature_skips_rpc(self):
        stub = StubRpcClient()

        assert asyncio.run(SolanaRpcLedger("http://rpc", client=stub).get_transaction("bad")) is None
        assert stub.calls == []

    @pytest.mark.parametrize(
        "error", [SolanaRpcException("timeout"), httpx.ConnectError("refused"), OSError("reset")]
    )
    def test_transport_errors_are_retryable(self, error):
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient(error=error))

        with pytest.raises(LedgerUnavailable) as exc_info:
            asyncio.run(ledger.account_exists(str(Keypair().pubkey())))

        assert exc_info.value.retryable

    def test_submit_returns_signature(self, signed_split):
        tx, signature, _ = signed_split

        result = asyncio.run(SolanaRpcLedger("http://rpc", client=StubRpcClient()).submit(bytes(tx)))

        assert result == signature

    def test_rejected_submission_is_payment_failure(self, signed_split):
        tx, _, _ = signed_split
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient(error=RPCException("simulation failed")))

        with pytest.raises(PaymentFailed, match="rejected"):
            asyncio.run(ledger.submit(bytes(tx)))

    def test_latest_blockhash(self):
        ledger = SolanaRpcLedger("http://rpc", client=StubRpcClient())

        assert asyncio.run(ledger.latest_blockhash()) == Hash.default()


class TestAwaitFinality:
    """Test bounded finality polling."""

    def test_returns_as_soon_as_visible(self, ledger):
        signature = ledger.add_transaction()
        ledger.hidden_lookups[signature] = 2

        tx = asyncio.run(await_finality(ledger, signature, FinalityPolicy(3, 0)))

        assert tx.signature == signature
        assert ledger.lookups[signature] == 3

    def test_gives_up_after_max_attempts(self, ledger):
        signature = str(Signature.new_unique())

        with pytest.raises(ProofNotFound, match="after 4 attempts"):
            asyncio.run(await_finality(ledger, signature, FinalityPolicy(4, 0)))

        assert ledger.lookups[signature] == 4

    def test_failed_transaction_is_final(self, ledger):
        signature = ledger.add_transaction(success=False, error="boom")

        tx = asyncio.run(await_finality(ledger, signature, FinalityPolicy(1, 0)))

        assert not tx.success

    def test_policy_validation(self):
        with pytest.raises(ValueError, match="max_attempts"):
            FinalityPolicy(max_attempts=0)
        with pytest.raises(ValueError, match="interval_seconds"):
            FinalityPolicy(interval_seconds=-1)

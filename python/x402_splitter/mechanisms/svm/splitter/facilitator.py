"""Solana facilitator side of the splitter scheme: payment proof verification.

A proof is the signature of a settlement transaction the payer submitted
to the ledger. Each proof is verified against the ledger at most once; the
outcome is stored keyed by signature and replayed on later presentations.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from ....config import SplitterSettings
from ....errors import PaymentFailed, ProofMismatch
from ....stores import PaymentRecordStore
from ..constants import TOKEN_2022_PROGRAM_ADDRESS, TOKEN_PROGRAM_ADDRESS, TRANSFER_CHECKED_TAG
from ..ledger import FinalityPolicy, Ledger, LedgerTransaction, await_finality
from ..utils import derive_ata, validate_svm_signature
from .builder import decode_split_payment
from .constants import (
    ERR_AMOUNT_INSUFFICIENT,
    ERR_PROOF_REUSED,
    ERR_RECIPIENT_MISMATCH,
    ERR_SPLIT_INSTRUCTION_MISSING,
    ERR_SPLITTER_MISMATCH,
)
from .types import PaymentRecord, PaymentStatus, SplitAmounts, SplitterConfig

logger = logging.getLogger(__name__)

TOKEN_PROGRAMS = (TOKEN_PROGRAM_ADDRESS, TOKEN_2022_PROGRAM_ADDRESS)


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of a successful verification.

    Attributes:
        record: The confirmed payment record.
        replayed: True if the record existed before this call.
    """

    record: PaymentRecord
    replayed: bool


class ProofVerifier:
    """Verifies payment proofs exactly once per signature.

    With strict verification the confirmed transaction must settle the
    expected split: one ``split_payment`` call for the expected splitter and
    recipient token accounts, or TransferChecked instructions covering every
    recipient. Without it, any successful transaction is accepted.
    """

    def __init__(
        self,
        settings: SplitterSettings,
        ledger: Ledger,
        records: PaymentRecordStore,
        policy: FinalityPolicy | None = None,
    ):
        self._settings = settings
        self._ledger = ledger
        self._records = records
        self._policy = policy or settings.finality_policy
        self._strict = settings.strict_proof_verification

        if not self._strict:
            logger.warning(
                "Strict proof verification is disabled: any successful transaction "
                "will be accepted as payment proof"
            )

    async def verify(
        self,
        proof: str,
        config: SplitterConfig,
        amount: int,
        payer: str | None = None,
        resource: str = "",
    ) -> PaymentRecord:
        """Verify a proof and return its confirmed record.

        Raises:
            ProofNotFound: If the transaction is not final (retryable).
            PaymentFailed: If the transaction failed on the ledger.
            ProofMismatch: If the transaction does not settle this split.
            LedgerUnavailable: If the ledger cannot be reached (retryable).
        """
        outcome = await self.check(proof, config, amount, payer=payer, resource=resource)
        return outcome.record

    async def check(
        self,
        proof: str,
        config: SplitterConfig,
        amount: int,
        payer: str | None = None,
        resource: str = "",
    ) -> VerificationOutcome:
        """Verify a proof, reporting whether the result was a replay.

        Args:
            proof: Settlement transaction signature.
            config: Splitter the payment must settle.
            amount: Expected total in smallest units.
            payer: Payer identity claimed by the caller, if any.
            resource: Resource the proof is presented for.

        Returns:
            VerificationOutcome with the confirmed record.
        """
        # 1. Replay a stored result without touching the ledger
        existing = self._records.get(proof)
        if existing is not None and existing.status.is_terminal:
            return self._replay(existing, config, amount)

        if not validate_svm_signature(proof):
            raise PaymentFailed(f"malformed proof signature: {proof!r}")

        # 2. Wait (bounded) for the transaction to be final
        tx = await await_finality(self._ledger, proof, self._policy)
        splits = config.compute_splits(amount)

        # 3. Failed on the ledger: keep a failed record for audit, never authorize
        if not tx.success:
            logger.warning("Proof %s failed on ledger: %s", proof, tx.error)
            failed = PaymentRecord.from_splits(
                proof, config.splitter_id, payer, splits, PaymentStatus.FAILED, resource, tx.error
            )
            self._store(failed, PaymentStatus.FAILED, tx.error)
            raise PaymentFailed(f"transaction {proof} failed: {tx.error}")

        # 4. Check the transaction settles this split
        if self._strict:
            settled_by = self._check_settlement(tx, config, splits)
            if payer and settled_by and payer != settled_by:
                logger.warning(
                    "Proof %s claimed payer %s but was paid by %s", proof, payer, settled_by
                )
            payer = settled_by or payer

        # 5. Insert-if-absent; a concurrent winner turns this call into a replay
        confirmed = PaymentRecord.from_splits(
            proof, config.splitter_id, payer, splits, PaymentStatus.CONFIRMED, resource
        )
        record, created = self._records.insert_if_absent(confirmed)
        if not created:
            if record.status is PaymentStatus.PENDING:
                record = self._records.resolve(proof, PaymentStatus.CONFIRMED)
            else:
                return self._replay(record, config, amount)

        logger.info(
            "Proof %s verified for splitter %s: %s paid %s",
            proof,
            config.splitter_id,
            record.payer or "unknown payer",
            record.amount,
        )
        return VerificationOutcome(record=record, replayed=False)

    def _store(self, record: PaymentRecord, status: PaymentStatus, error: str | None) -> PaymentRecord:
        stored, created = self._records.insert_if_absent(record)
        if not created and stored.status is PaymentStatus.PENDING:
            stored = self._records.resolve(record.signature, status, error)
        return stored

    def _replay(
        self, record: PaymentRecord, config: SplitterConfig, amount: int
    ) -> VerificationOutcome:
        if record.splitter_id != config.splitter_id:
            raise ProofMismatch(
                f"{ERR_PROOF_REUSED}: proof {record.signature} was recorded for "
                f"splitter {record.splitter_id}"
            )
        if record.status is PaymentStatus.FAILED:
            raise PaymentFailed(f"transaction {record.signature} failed: {record.error}")
        if record.amount < amount:
            raise ProofMismatch(
                f"{ERR_AMOUNT_INSUFFICIENT}: proof {record.signature} paid {record.amount}, "
                f"resource costs {amount}"
            )
        logger.debug("Replaying verified proof %s", record.signature)
        return VerificationOutcome(record=record, replayed=True)

    def _check_settlement(
        self, tx: LedgerTransaction, config: SplitterConfig, splits: SplitAmounts
    ) -> str | None:
        """Check that ``tx`` pays ``splits`` to ``config``'s recipients.

        Returns:
            The paying wallet found in the settling instructions.

        Raises:
            ProofMismatch: If neither an atomic split nor full transfers are found.
        """
        mint = self._settings.mint
        recipient_atas = [derive_ata(address, mint) for address in config.recipients]

        try:
            return self._check_split_instruction(tx, config, recipient_atas, splits.total)
        except ProofMismatch:
            payer = self._check_transfers(tx, recipient_atas, splits)
            if payer is None:
                raise
            return payer

    def _check_split_instruction(
        self,
        tx: LedgerTransaction,
        config: SplitterConfig,
        recipient_atas: list[str],
        expected_total: int,
    ) -> str:
        reason = ERR_SPLIT_INSTRUCTION_MISSING
        for ix in tx.instructions_for(self._settings.program_id):
            paid = decode_split_payment(ix.data)
            if paid is None or len(ix.accounts) < 6:
                continue
            if ix.accounts[0] != config.splitter_id:
                reason = ERR_SPLITTER_MISMATCH
                continue
            if ix.accounts[3:6] != recipient_atas:
                reason = ERR_RECIPIENT_MISMATCH
                continue
            if paid < expected_total:
                reason = ERR_AMOUNT_INSUFFICIENT
                continue
            return ix.accounts[1]
        raise ProofMismatch(f"{reason}: transaction {tx.signature} does not settle splitter {config.splitter_id}")

    def _check_transfers(
        self, tx: LedgerTransaction, recipient_atas: list[str], splits: SplitAmounts
    ) -> str | None:
        expected: dict[str, int] = defaultdict(int)
        for ata, amount in zip(recipient_atas, splits.as_tuple()):
            expected[ata] += amount

        received: dict[str, int] = defaultdict(int)
        owner = None
        for ix in tx.instructions:
            if ix.program_id not in TOKEN_PROGRAMS:
                continue
            # TransferChecked: [source, mint, destination, owner], data = tag | u64 | u8
            if len(ix.data) < 10 or ix.data[0] != TRANSFER_CHECKED_TAG or len(ix.accounts) < 4:
                continue
            if ix.accounts[1] != self._settings.mint:
                continue
            received[ix.accounts[2]] += int.from_bytes(ix.data[1:9], "little")
            owner = ix.accounts[3]

        if owner is None:
            return None
        for ata, amount in expected.items():
            if received[ata] < amount:
                return None
        return owner

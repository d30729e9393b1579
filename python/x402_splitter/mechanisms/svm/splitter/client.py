"""Solana client side of the splitter scheme.

Requests a protected resource, and when challenged: checks the advertised
split, has the server build the settlement transaction, signs and submits
it, waits for finality and retries the request once with the proof.

Example:
    ```python
    signer = KeypairSigner.from_base58(private_key)
    ledger = SolanaRpcLedger("https://api.devnet.solana.com")

    async with httpx.AsyncClient(base_url="http://localhost:3001") as http:
        client = SplitPaymentClient(http, signer, ledger)
        result = await client.request("/api/demo/get-data", splitter_id)
        print(result.body)
    ```
"""

import base64
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError
from solders.transaction import Transaction

from ....errors import (
    ChallengeLoop,
    InvalidChallenge,
    PaymentFailed,
    SplitMismatch,
    SplitterError,
    error_from_reason,
)
from ....schemas import BuildTransactionResponse, PaymentRequired, PaymentRequirements
from ..constants import (
    ASSOCIATED_TOKEN_PROGRAM_ADDRESS,
    TOKEN_PROGRAM_ADDRESS,
    TRANSFER_CHECKED_TAG,
)
from ..ledger import FinalityPolicy, Ledger, await_finality
from ..signers import KeypairSigner
from ..utils import derive_ata
from .builder import decode_split_payment
from .constants import PAYER_IDENTITY_HEADER, PROOF_SIGNATURE_HEADER, ROLES
from .types import SplitAmounts, compute_splits

logger = logging.getLogger(__name__)

DEFAULT_BUILD_PATH = "/api/payment/build-split-tx"

# Client-side finality wait: up to ~30s
DEFAULT_CLIENT_FINALITY = FinalityPolicy(max_attempts=30, interval_seconds=1.0, backoff=1.0)


class ClientState(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    CHALLENGE_RECEIVED = "challenge_received"
    PAYING = "paying"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    RETRIED = "retried"
    DONE = "done"


@dataclass
class PaymentResult:
    """Outcome of a paid request.

    Attributes:
        status_code: HTTP status of the final response.
        body: Decoded JSON body of the final response.
        payment_made: Whether a settlement transaction was submitted.
        signature: Proof signature, if a payment was made.
        splits: Split amounts paid, if a payment was made.
        history: States the client went through.
    """

    status_code: int
    body: Any
    payment_made: bool = False
    signature: str | None = None
    splits: SplitAmounts | None = None
    history: list[ClientState] = field(default_factory=list)


class SplitPaymentClient:
    """Pays split challenges and retries the original request once."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        signer: KeypairSigner,
        ledger: Ledger,
        policy: FinalityPolicy = DEFAULT_CLIENT_FINALITY,
        build_path: str = DEFAULT_BUILD_PATH,
    ):
        self._http = http
        self._signer = signer
        self._ledger = ledger
        self._policy = policy
        self._build_path = build_path
        self.history: list[ClientState] = [ClientState.IDLE]

    @property
    def state(self) -> ClientState:
        return self.history[-1]

    def _transition(self, state: ClientState) -> None:
        logger.debug("Client %s -> %s", self.state.value, state.value)
        self.history.append(state)

    async def request(self, path: str, splitter_id: str) -> PaymentResult:
        """Request a protected resource, paying for it if challenged.

        Args:
            path: Resource path on the server.
            splitter_id: Splitter to pay.

        Returns:
            PaymentResult of the final (possibly retried) response.

        Raises:
            InvalidChallenge: If a 402 body is not a valid challenge.
            SplitMismatch: If the advertised or built split does not check out.
            ChallengeLoop: If the proof-carrying retry is challenged again.
            ProofNotFound: If the server could not yet see the payment (retryable).
            PaymentFailed: If the payment failed or was rejected.
            LedgerUnavailable: If the ledger cannot be reached.
        """
        self.history = [ClientState.IDLE]
        body = {"splitterId": splitter_id}

        # 1. Attempt without proof
        self._transition(ClientState.REQUESTED)
        response = await self._http.post(path, json=body)
        if response.status_code != 402:
            self._transition(ClientState.DONE)
            return self._result(response)

        # 2. Check the challenge before paying anything
        challenge = _parse_challenge(response)
        self._transition(ClientState.CHALLENGE_RECEIVED)
        requirements = challenge.accepts[0]
        splits = self._check_requirements(requirements, splitter_id)

        # 3. Build, sign and submit exactly one settlement transaction
        self._transition(ClientState.PAYING)
        tx = await self._build_transaction(requirements, splitter_id, splits)
        blockhash = await self._ledger.latest_blockhash()
        self._signer.sign_transaction(tx, blockhash)
        signature = await self._ledger.submit(bytes(tx))
        self._transition(ClientState.SUBMITTED)
        logger.info("Submitted settlement %s for %s", signature, requirements.resource)

        # 4. Wait (bounded) for finality
        final = await await_finality(self._ledger, signature, self._policy)
        if not final.success:
            raise PaymentFailed(f"settlement {signature} failed: {final.error}")
        self._transition(ClientState.CONFIRMED)

        # 5. Retry once with proof
        headers = {
            PROOF_SIGNATURE_HEADER: signature,
            PAYER_IDENTITY_HEADER: self._signer.address,
        }
        response = await self._http.post(path, json=body, headers=headers)
        self._transition(ClientState.RETRIED)

        if response.status_code == 402:
            retry_challenge = _parse_challenge(response)
            if retry_challenge.is_denial:
                raise error_from_reason(retry_challenge.error, retry_challenge.message)
            raise ChallengeLoop(f"server challenged again after proof {signature}")

        self._transition(ClientState.DONE)
        return self._result(response, signature=signature, splits=splits)

    def _check_requirements(self, requirements: PaymentRequirements, splitter_id: str) -> SplitAmounts:
        """Recompute the split from the advertised shares and compare."""
        if requirements.pay_to != splitter_id:
            raise SplitMismatch(
                f"challenge pays {requirements.pay_to}, expected splitter {splitter_id}"
            )

        try:
            advertised = [requirements.recipient(role) for role in ROLES]
        except KeyError as e:
            raise InvalidChallenge(f"challenge has no {e.args[0]} recipient") from e

        splits = compute_splits(requirements.amount, *(r.share for r in advertised))
        if tuple(r.amount for r in advertised) != splits.as_tuple():
            raise SplitMismatch(
                f"advertised amounts {[r.amount for r in advertised]} differ from "
                f"recomputed {list(splits.as_tuple())}"
            )
        if requirements.residual != splits.residual:
            raise SplitMismatch(
                f"advertised residual {requirements.residual} differs from {splits.residual}"
            )

        for r in advertised:
            logger.info("  %s: %s%% = %s -> %s", r.role, r.share, r.amount, r.address)
        return splits

    async def _build_transaction(
        self, requirements: PaymentRequirements, splitter_id: str, splits: SplitAmounts
    ) -> Transaction:
        response = await self._http.post(
            self._build_path,
            json={
                "splitterId": splitter_id,
                "payerIdentity": self._signer.address,
                "amount": requirements.amount,
            },
        )
        if response.status_code != 200:
            raise _error_from_response(response)

        try:
            built = BuildTransactionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InvalidChallenge(f"invalid build-transaction response: {e}") from e

        # The built split must match the challenge recipient by recipient
        for role in ROLES:
            advertised = requirements.recipient(role)
            built_share = getattr(built.splits, role)
            if (built_share.address, built_share.amount, built_share.percentage) != (
                advertised.address,
                advertised.amount,
                advertised.share,
            ):
                raise SplitMismatch(f"built {role} split differs from the challenge")

        try:
            tx = Transaction.from_bytes(base64.b64decode(built.transaction))
        except ValueError as e:
            raise InvalidChallenge(f"undecodable settlement transaction: {e}") from e

        check_settlement_transaction(tx, requirements, self._signer.address, splits)
        return tx

    def _result(
        self,
        response: httpx.Response,
        signature: str | None = None,
        splits: SplitAmounts | None = None,
    ) -> PaymentResult:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return PaymentResult(
            status_code=response.status_code,
            body=body,
            payment_made=signature is not None,
            signature=signature,
            splits=splits,
            history=list(self.history),
        )


def _parse_challenge(response: httpx.Response) -> PaymentRequired:
    try:
        return PaymentRequired.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise InvalidChallenge(f"invalid 402 body: {e}") from e


def _error_from_response(response: httpx.Response) -> SplitterError:
    try:
        data = response.json()
        return error_from_reason(data["error"], data.get("message"))
    except (ValueError, KeyError, TypeError):
        return SplitterError(f"HTTP {response.status_code}: {response.text}")


def check_settlement_transaction(
    tx: Transaction, requirements: PaymentRequirements, payer: str, splits: SplitAmounts
) -> None:
    """Check every instruction of a server-built transaction before signing it.

    Allowed are recipient token account creations paid by ``payer``, plus
    either exactly one ``split_payment`` of the challenged amount to the
    challenged recipients, or TransferChecked instructions paying each
    recipient exactly its recomputed amount.

    Raises:
        SplitMismatch: If any instruction falls outside that shape.
    """
    keys = [str(k) for k in tx.message.account_keys]
    if not keys or keys[0] != payer:
        raise SplitMismatch(f"settlement fee payer is not {payer}")

    mint = requirements.asset
    payer_ata = derive_ata(payer, mint)
    recipients = [requirements.recipient(role).address for role in ROLES]
    recipient_atas = [derive_ata(address, mint) for address in recipients]

    expected: dict[str, int] = defaultdict(int)
    for ata, amount in zip(recipient_atas, splits.as_tuple()):
        if amount > 0:
            expected[ata] += amount

    split_calls = 0
    received: dict[str, int] = defaultdict(int)
    for ix in tx.message.instructions:
        program = keys[ix.program_id_index]
        accounts = [keys[i] for i in bytes(ix.accounts)]
        data = bytes(ix.data)

        if program == ASSOCIATED_TOKEN_PROGRAM_ADDRESS:
            # create: [payer, ata, owner, mint, system program, token program]
            if (
                len(accounts) < 4
                or accounts[0] != payer
                or accounts[2] not in recipients
                or accounts[3] != mint
                or accounts[1] != derive_ata(accounts[2], mint)
            ):
                raise SplitMismatch("settlement creates a token account outside the split")

        elif program == requirements.program_id:
            amount = decode_split_payment(data)
            if amount is None:
                raise SplitMismatch("settlement calls the split program with unexpected data")
            if amount != requirements.amount:
                raise SplitMismatch(f"settlement splits {amount}, challenge asks {requirements.amount}")
            if accounts[:6] != [requirements.pay_to, payer, payer_ata, *recipient_atas]:
                raise SplitMismatch("split_payment accounts differ from the challenged recipients")
            if accounts[6:] != [TOKEN_PROGRAM_ADDRESS]:
                raise SplitMismatch("split_payment does not use the token program")
            split_calls += 1

        elif program == TOKEN_PROGRAM_ADDRESS:
            # TransferChecked: [source, mint, destination, owner], data = tag | u64 | u8
            if len(data) != 10 or data[0] != TRANSFER_CHECKED_TAG or len(accounts) != 4:
                raise SplitMismatch("settlement contains a token instruction other than TransferChecked")
            source, transfer_mint, destination, owner = accounts
            if (source, transfer_mint, owner) != (payer_ata, mint, payer):
                raise SplitMismatch("settlement transfer does not move the challenged token from the payer")
            received[destination] += int.from_bytes(data[1:9], "little")

        else:
            raise SplitMismatch(f"settlement calls unexpected program {program}")

    if split_calls == 1 and not received:
        return
    if split_calls == 0 and received == expected:
        return
    raise SplitMismatch("settlement does not pay exactly the challenged split")

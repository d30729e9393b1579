"""Per-request payment protocol state machine.

A request without proof is answered with a challenge. A request with proof
is verified and then either granted or denied with a challenge-shaped error.
The coordinator keeps no state between requests; verification results live
in the payment record store.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import PaymentFailed, ProofNotFound, SplitterError, SplitterNotReady
from .mechanisms.svm.splitter.facilitator import ProofVerifier
from .mechanisms.svm.splitter.registry import SplitterRegistry
from .mechanisms.svm.splitter.server import ChallengeIssuer
from .mechanisms.svm.splitter.types import PaymentRecord, SplitterConfig, UsageEvent
from .schemas import PaymentRequired
from .stores import UsageLog

logger = logging.getLogger(__name__)


class AccessState(str, Enum):
    CHALLENGE = "challenge"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessRequest:
    """An inbound request for a protected resource.

    Attributes:
        resource: URI of the resource.
        splitter_id: Splitter that must be paid.
        proof: Settlement transaction signature, if presented.
        payer: Payer identity claimed by the caller.
    """

    resource: str
    splitter_id: str
    proof: str | None = None
    payer: str | None = None


@dataclass
class AccessDecision:
    state: AccessState
    config: SplitterConfig
    challenge: PaymentRequired | None = None
    record: PaymentRecord | None = None
    replayed: bool = False
    error: SplitterError | None = None

    @property
    def granted(self) -> bool:
        return self.state is AccessState.GRANTED


class ProtocolCoordinator:
    """Decides challenge, grant or denial for each request."""

    def __init__(
        self,
        registry: SplitterRegistry,
        issuer: ChallengeIssuer,
        verifier: ProofVerifier,
        usage: UsageLog,
    ):
        self._registry = registry
        self._issuer = issuer
        self._verifier = verifier
        self._usage = usage

    async def handle(self, request: AccessRequest) -> AccessDecision:
        """Run one request through the protocol.

        Raises:
            SplitterNotFound: If the splitter does not exist.
            SplitterNotReady: If the splitter is not initialized on-chain.
            LedgerUnavailable: If the ledger cannot be reached (retryable).
        """
        config = self._registry.get(request.splitter_id)
        if not config.on_chain_ready:
            raise SplitterNotReady(f"splitter {config.splitter_id} is not initialized on-chain")

        # AwaitingProof
        if not request.proof:
            challenge = self._issuer.issue_challenge(request.resource, config)
            return AccessDecision(state=AccessState.CHALLENGE, config=config, challenge=challenge)

        # Verifying
        amount = self._issuer.amount_for(request.resource)
        try:
            outcome = await self._verifier.check(
                request.proof,
                config,
                amount,
                payer=request.payer,
                resource=request.resource,
            )
        except (ProofNotFound, PaymentFailed) as e:
            logger.warning("Denied proof %s for %s: %s", request.proof, request.resource, e)
            denial = self._issuer.issue_denial(request.resource, config, e, request.proof)
            return AccessDecision(
                state=AccessState.DENIED, config=config, challenge=denial, error=e
            )

        # Granted; a replay was already logged by the first grant
        record = outcome.record
        if not outcome.replayed:
            self._usage.append(
                UsageEvent(
                    splitter_id=config.splitter_id,
                    resource=request.resource,
                    payer=record.payer,
                    signature=record.signature,
                )
            )
        logger.info(
            "Granted %s to %s (proof %s%s)",
            request.resource,
            record.payer or "unknown payer",
            record.signature,
            ", replayed" if outcome.replayed else "",
        )
        return AccessDecision(
            state=AccessState.GRANTED,
            config=config,
            record=record,
            replayed=outcome.replayed,
        )

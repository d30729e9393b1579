"""Solana server side of the splitter scheme: payment challenge construction."""

import logging
from urllib.parse import urlparse

from ....config import SplitterSettings
from ....errors import SplitterError, SplitterNotReady
from ....schemas import PaymentRequired, PaymentRequirements, RecipientDescriptor
from .constants import DEFAULT_TIMEOUT_SECONDS, PROTOCOL_VERSION, ROLES, SCHEME_SPLIT
from .types import SplitterConfig

logger = logging.getLogger(__name__)


class ChallengeIssuer:
    """Builds payment-required challenges for protected resources.

    The price of a resource is fixed per resource path and never supplied by
    the caller.
    """

    scheme = SCHEME_SPLIT

    def __init__(
        self,
        settings: SplitterSettings,
        prices: dict[str, int] | None = None,
        description: str | None = "Premium API access with payment splitting",
        max_timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Create a ChallengeIssuer.

        Args:
            settings: Network, asset and default price.
            prices: Optional per-path prices in smallest units.
            description: Description advertised in every challenge.
            max_timeout_seconds: Max timeout advertised in every challenge.
        """
        self._settings = settings
        self._prices = dict(prices or {})
        self._description = description
        self._max_timeout_seconds = max_timeout_seconds

        for path, price in self._prices.items():
            if price <= 0:
                raise ValueError(f"Price for {path} must be positive, got {price}")

    def amount_for(self, resource: str) -> int:
        """Return the fixed price of a resource URI or path."""
        path = urlparse(resource).path or resource
        return self._prices.get(path, self._settings.payment_amount)

    def create_payment_requirements(
        self, resource: str, config: SplitterConfig
    ) -> PaymentRequirements:
        """Create the accepts entry for paying ``config`` for ``resource``.

        Args:
            resource: URI of the protected resource.
            config: Splitter receiving the payment.

        Returns:
            PaymentRequirements with the three recipient amounts.

        Raises:
            SplitterNotReady: If the splitter is not initialized on-chain.
            InvalidShares: If the stored shares do not sum to 100.
        """
        if not config.on_chain_ready:
            raise SplitterNotReady(f"splitter {config.splitter_id} is not initialized on-chain")

        total = self.amount_for(resource)
        splits = config.compute_splits(total)

        recipients = [
            RecipientDescriptor(role=role, address=address, share=share, amount=amount)
            for role, address, share, amount in zip(
                ROLES, config.recipients, config.shares, splits.as_tuple()
            )
        ]

        return PaymentRequirements(
            network=self._settings.network,
            asset=self._settings.mint,
            pay_to=config.splitter_id,
            max_amount_required=str(total),
            resource=resource,
            description=self._description,
            max_timeout_seconds=self._max_timeout_seconds,
            program_id=self._settings.program_id,
            recipients=recipients,
            residual=splits.residual,
        )

    def issue_challenge(self, resource: str, config: SplitterConfig) -> PaymentRequired:
        """Build the initial 402 challenge for a request without proof."""
        requirements = self.create_payment_requirements(resource, config)
        logger.info(
            "Issuing challenge for %s: %s to splitter %s",
            resource,
            requirements.max_amount_required,
            config.splitter_id,
        )
        return PaymentRequired(protocol_version=PROTOCOL_VERSION, accepts=[requirements])

    def issue_denial(
        self,
        resource: str,
        config: SplitterConfig,
        error: SplitterError,
        rejected_proof: str,
    ) -> PaymentRequired:
        """Build a challenge-shaped denial of a presented proof.

        The denial names the rejected proof so the caller knows to pay again
        (non-retryable) or to retry the same proof later (retryable).
        """
        requirements = self.create_payment_requirements(resource, config)
        return PaymentRequired(
            protocol_version=PROTOCOL_VERSION,
            accepts=[requirements],
            error=error.reason,
            message=error.message or error.reason,
            retryable=error.retryable,
            rejected_proof=rejected_proof,
        )

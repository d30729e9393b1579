"""Process configuration loaded from the environment."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .mechanisms.svm.ledger import FinalityPolicy
from .mechanisms.svm.splitter.constants import DEFAULT_PAYMENT_AMOUNT, DEFAULT_PROGRAM_ID
from .mechanisms.svm.splitter.types import SettlementMode
from .mechanisms.svm.utils import get_network_config, normalize_network, validate_svm_address

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class SplitterSettings:
    """Settings shared by the server, the builder and the verifier.

    Attributes:
        rpc_url: Solana JSON-RPC endpoint.
        network: CAIP-2 network identifier.
        program_id: Split program address.
        mint: SPL token mint of the payment asset.
        decimals: Token decimals.
        payment_amount: Fixed price of the protected resource, in smallest units.
        settlement_mode: Atomic program call or independent transfers.
        strict_proof_verification: Check proof instructions, not only success.
        finality_max_attempts: Ledger lookups per proof before ProofNotFound.
        finality_poll_seconds: Delay between lookups.
        host: Listening host of the demo server.
        port: Listening port of the demo server.
        log_level: Root logging level.
    """

    rpc_url: str
    network: str
    program_id: str = DEFAULT_PROGRAM_ID
    mint: str = ""
    decimals: int = 6
    payment_amount: int = DEFAULT_PAYMENT_AMOUNT
    settlement_mode: SettlementMode = SettlementMode.ATOMIC
    strict_proof_verification: bool = True
    finality_max_attempts: int = 3
    finality_poll_seconds: float = 1.0
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "SplitterSettings":
        """Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first, if one exists.

        Raises:
            ValueError: If a variable is malformed.
        """
        if dotenv:
            load_dotenv()

        network = normalize_network(os.getenv("SOLANA_NETWORK", "solana-devnet"))
        network_config = get_network_config(network)

        try:
            mode = SettlementMode(os.getenv("SETTLEMENT_MODE", SettlementMode.ATOMIC.value))
        except ValueError:
            raise ValueError(
                f"SETTLEMENT_MODE must be one of {[m.value for m in SettlementMode]}"
            ) from None

        settings = cls(
            rpc_url=os.getenv("SOLANA_RPC_URL") or network_config["rpc_url"],
            network=network,
            program_id=os.getenv("PROGRAM_ID", DEFAULT_PROGRAM_ID),
            mint=os.getenv("USDC_MINT") or network_config["default_asset"]["address"],
            decimals=int(os.getenv("TOKEN_DECIMALS", "6")),
            payment_amount=int(os.getenv("PAYMENT_AMOUNT", str(DEFAULT_PAYMENT_AMOUNT))),
            settlement_mode=mode,
            strict_proof_verification=_env_bool("STRICT_PROOF_VERIFICATION", True),
            finality_max_attempts=int(os.getenv("FINALITY_MAX_ATTEMPTS", "3")),
            finality_poll_seconds=float(os.getenv("FINALITY_POLL_SECONDS", "1.0")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ValueError if any setting is unusable."""
        self.network = normalize_network(self.network)
        if not self.mint:
            self.mint = get_network_config(self.network)["default_asset"]["address"]
        if not validate_svm_address(self.program_id):
            raise ValueError(f"Invalid PROGRAM_ID: {self.program_id}")
        if not validate_svm_address(self.mint):
            raise ValueError(f"Invalid USDC_MINT: {self.mint}")
        if self.payment_amount <= 0:
            raise ValueError(f"PAYMENT_AMOUNT must be positive, got {self.payment_amount}")
        if not 0 <= self.decimals <= 18:
            raise ValueError(f"TOKEN_DECIMALS must be 0-18, got {self.decimals}")
        if not isinstance(self.settlement_mode, SettlementMode):
            self.settlement_mode = SettlementMode(self.settlement_mode)
        if self.finality_max_attempts < 1:
            raise ValueError("FINALITY_MAX_ATTEMPTS must be >= 1")
        if self.finality_poll_seconds < 0:
            raise ValueError("FINALITY_POLL_SECONDS must be >= 0")

    @property
    def finality_policy(self) -> FinalityPolicy:
        return FinalityPolicy(
            max_attempts=self.finality_max_attempts,
            interval_seconds=self.finality_poll_seconds,
        )

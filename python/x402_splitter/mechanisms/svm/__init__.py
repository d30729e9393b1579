"""Solana (SVM) mechanism: addresses, signers and the ledger adapter."""

from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ADDRESS,
    DEFAULT_DECIMALS,
    NETWORK_CONFIGS,
    SOLANA_DEVNET_CAIP2,
    SOLANA_MAINNET_CAIP2,
    SOLANA_TESTNET_CAIP2,
    TOKEN_PROGRAM_ADDRESS,
    USDC_DEVNET_ADDRESS,
    USDC_MAINNET_ADDRESS,
)
from .ledger import (
    FinalityPolicy,
    Ledger,
    LedgerInstruction,
    LedgerTransaction,
    SolanaRpcLedger,
    await_finality,
)
from .signers import KeypairSigner
from .utils import (
    derive_ata,
    derive_splitter_address,
    normalize_network,
    parse_pubkey,
    validate_svm_address,
)

__all__ = [
    # Constants
    "ASSOCIATED_TOKEN_PROGRAM_ADDRESS",
    "DEFAULT_DECIMALS",
    "NETWORK_CONFIGS",
    "SOLANA_DEVNET_CAIP2",
    "SOLANA_MAINNET_CAIP2",
    "SOLANA_TESTNET_CAIP2",
    "TOKEN_PROGRAM_ADDRESS",
    "USDC_DEVNET_ADDRESS",
    "USDC_MAINNET_ADDRESS",
    # Ledger
    "FinalityPolicy",
    "Ledger",
    "LedgerInstruction",
    "LedgerTransaction",
    "SolanaRpcLedger",
    "await_finality",
    # Signers
    "KeypairSigner",
    # Utils
    "derive_ata",
    "derive_splitter_address",
    "normalize_network",
    "parse_pubkey",
    "validate_svm_address",
]

"""SVM mechanism constants - network configs, USDC addresses, program ids."""

from typing import TypedDict

# Default token decimals for USDC on Solana
DEFAULT_DECIMALS = 6

# Token program addresses (same across all Solana networks)
TOKEN_PROGRAM_ADDRESS = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ADDRESS = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ADDRESS = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ADDRESS = "11111111111111111111111111111111"

# SPL Token instruction tag for TransferChecked
TRANSFER_CHECKED_TAG = 12

# Default RPC URLs for Solana networks
DEVNET_RPC_URL = "https://api.devnet.solana.com"
TESTNET_RPC_URL = "https://api.testnet.solana.com"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"

# USDC token mint addresses (default stablecoin)
USDC_MAINNET_ADDRESS = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDC_DEVNET_ADDRESS = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"
USDC_TESTNET_ADDRESS = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"  # Same as devnet

# Solana address validation regex (base58, 32-44 characters)
SVM_ADDRESS_REGEX = r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"

# Transaction signature validation regex (base58, 64 bytes)
SVM_SIGNATURE_REGEX = r"^[1-9A-HJ-NP-Za-km-z]{64,88}$"

# CAIP-2 network identifiers for Solana
SOLANA_MAINNET_CAIP2 = "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp"
SOLANA_DEVNET_CAIP2 = "solana:EtWTRABZaYq6iMfeYKouRu166VU2xqa1"
SOLANA_TESTNET_CAIP2 = "solana:4uhcVJyU9pJkvQyS88uRDiswHXSCkY3z"

# Legacy network names accepted in configuration
V1_TO_V2_NETWORK_MAP: dict[str, str] = {
    "solana": SOLANA_MAINNET_CAIP2,
    "solana-devnet": SOLANA_DEVNET_CAIP2,
    "solana-testnet": SOLANA_TESTNET_CAIP2,
}


class AssetInfo(TypedDict):
    """Information about a token asset."""

    address: str
    name: str
    decimals: int


class NetworkConfig(TypedDict):
    """Configuration for a Solana network."""

    rpc_url: str
    default_asset: AssetInfo


NETWORK_CONFIGS: dict[str, NetworkConfig] = {
    SOLANA_MAINNET_CAIP2: {
        "rpc_url": MAINNET_RPC_URL,
        "default_asset": {
            "address": USDC_MAINNET_ADDRESS,
            "name": "USD Coin",
            "decimals": 6,
        },
    },
    SOLANA_DEVNET_CAIP2: {
        "rpc_url": DEVNET_RPC_URL,
        "default_asset": {
            "address": USDC_DEVNET_ADDRESS,
            "name": "USD Coin",
            "decimals": 6,
        },
    },
    SOLANA_TESTNET_CAIP2: {
        "rpc_url": TESTNET_RPC_URL,
        "default_asset": {
            "address": USDC_TESTNET_ADDRESS,
            "name": "USD Coin",
            "decimals": 6,
        },
    },
}

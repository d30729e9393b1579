"""SVM utility functions for network, address, and amount handling."""

import re
from decimal import Decimal

from solders.pubkey import Pubkey

from ...errors import InvalidAddress
from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ADDRESS,
    NETWORK_CONFIGS,
    SOLANA_DEVNET_CAIP2,
    SOLANA_MAINNET_CAIP2,
    SOLANA_TESTNET_CAIP2,
    SVM_ADDRESS_REGEX,
    SVM_SIGNATURE_REGEX,
    TOKEN_PROGRAM_ADDRESS,
    V1_TO_V2_NETWORK_MAP,
    NetworkConfig,
)

# PDA namespace tag of splitter accounts
SPLITTER_SEED = b"splitter"


def normalize_network(network: str) -> str:
    """Normalize network identifier to CAIP-2 format.

    Handles both V1 names (solana, solana-devnet) and V2 CAIP-2 format.

    Args:
        network: Network identifier (V1 or V2 format).

    Returns:
        CAIP-2 network identifier.

    Raises:
        ValueError: If network is not supported.
    """
    if ":" in network:
        supported = [SOLANA_MAINNET_CAIP2, SOLANA_DEVNET_CAIP2, SOLANA_TESTNET_CAIP2]
        if network not in supported:
            raise ValueError(f"Unsupported SVM network: {network}")
        return network

    caip2_network = V1_TO_V2_NETWORK_MAP.get(network)
    if not caip2_network:
        raise ValueError(f"Unsupported SVM network: {network}")
    return caip2_network


def get_network_config(network: str) -> NetworkConfig:
    """Get configuration for a network.

    Args:
        network: Network identifier (CAIP-2 or V1 format).

    Returns:
        Network configuration.

    Raises:
        ValueError: If network is not supported.
    """
    caip2_network = normalize_network(network)
    config = NETWORK_CONFIGS.get(caip2_network)
    if not config:
        raise ValueError(f"No configuration for network: {network}")
    return config


def validate_svm_address(address: str) -> bool:
    """Validate Solana address format.

    Args:
        address: Base58 encoded address string.

    Returns:
        True if address is valid, False otherwise.
    """
    if not isinstance(address, str):
        return False
    return bool(re.match(SVM_ADDRESS_REGEX, address))


def validate_svm_signature(signature: str) -> bool:
    """Validate Solana transaction signature format."""
    if not isinstance(signature, str):
        return False
    return bool(re.match(SVM_SIGNATURE_REGEX, signature))


def parse_pubkey(address: str, role: str = "address") -> Pubkey:
    """Parse a base58 address into a Pubkey.

    Args:
        address: Base58 encoded address string.
        role: Participant role, used in the error message.

    Returns:
        Parsed public key.

    Raises:
        InvalidAddress: If the address is malformed.
    """
    if not validate_svm_address(address):
        raise InvalidAddress(f"invalid {role}: {address!r}")
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddress(f"invalid {role}: {address!r}") from e


def derive_ata(owner: str, mint: str, token_program: str | None = None) -> str:
    """Derive the Associated Token Account (ATA) address.

    Args:
        owner: Owner wallet address.
        mint: Token mint address.
        token_program: Optional token program address (defaults to Token Program).

    Returns:
        ATA address as base58 string.
    """
    if token_program is None:
        token_program = TOKEN_PROGRAM_ADDRESS

    owner_pubkey = parse_pubkey(owner, "owner")
    mint_pubkey = parse_pubkey(mint, "mint")
    program_pubkey = Pubkey.from_string(token_program)

    # PDA derivation: [owner, token_program, mint]
    seeds = [bytes(owner_pubkey), bytes(program_pubkey), bytes(mint_pubkey)]
    ata, _ = Pubkey.find_program_address(
        seeds, Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ADDRESS)
    )

    return str(ata)


def derive_splitter_address(authority: str, program_id: str) -> str:
    """Derive the splitter account address owned by an authority.

    Args:
        authority: Authority wallet address.
        program_id: Split program address.

    Returns:
        Splitter PDA as base58 string.
    """
    authority_pubkey = parse_pubkey(authority, "authority")
    program_pubkey = parse_pubkey(program_id, "program id")

    # PDA derivation: ["splitter", authority]
    splitter, _ = Pubkey.find_program_address(
        [SPLITTER_SEED, bytes(authority_pubkey)], program_pubkey
    )
    return str(splitter)


def format_amount(amount: int, decimals: int) -> str:
    """Convert smallest unit to decimal string.

    Args:
        amount: Amount in smallest unit.
        decimals: Token decimals.

    Returns:
        Decimal string.
    """
    d = Decimal(amount)
    divisor = Decimal(10**decimals)
    return str(d / divisor)

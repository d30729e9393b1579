"""Concrete SVM signer implementations."""

import json
from pathlib import Path

from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction


class KeypairSigner:
    """Client-side signer using a Solana keypair.

    Example:
        ```python
        from solders.keypair import Keypair

        keypair = Keypair.from_base58_string(private_key)
        signer = KeypairSigner(keypair)
        ```
    """

    def __init__(self, keypair: Keypair):
        """Create KeypairSigner.

        Args:
            keypair: Solders Keypair instance.
        """
        self._keypair = keypair

    @property
    def address(self) -> str:
        """Get signer's address.

        Returns:
            Base58 encoded public key.
        """
        return str(self._keypair.pubkey())

    @property
    def keypair(self) -> Keypair:
        """Get underlying keypair.

        Returns:
            Solders Keypair instance.
        """
        return self._keypair

    def sign_transaction(self, tx: Transaction, recent_blockhash: Hash) -> Transaction:
        """Sign an unsigned settlement transaction.

        The blockhash is bound only at signing time; unsigned transactions
        travel with a zeroed blockhash.

        Args:
            tx: The transaction to sign. The signer must be its fee payer.
            recent_blockhash: Liveness anchor fetched from the ledger.

        Returns:
            Signed transaction.

        Raises:
            ValueError: If the signer is not the transaction's fee payer.
        """
        fee_payer = tx.message.account_keys[0]
        if fee_payer != self._keypair.pubkey():
            raise ValueError(f"Transaction fee payer {fee_payer} is not signer {self.address}")
        tx.sign([self._keypair], recent_blockhash)
        return tx

    @classmethod
    def from_base58(cls, private_key: str) -> "KeypairSigner":
        """Create signer from base58 encoded private key.

        Args:
            private_key: Base58 encoded private key (64 bytes).

        Returns:
            KeypairSigner instance.
        """
        keypair = Keypair.from_base58_string(private_key)
        return cls(keypair)

    @classmethod
    def from_bytes(cls, private_key: bytes) -> "KeypairSigner":
        """Create signer from private key bytes.

        Args:
            private_key: Private key bytes (64 bytes).

        Returns:
            KeypairSigner instance.
        """
        keypair = Keypair.from_bytes(private_key)
        return cls(keypair)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "KeypairSigner":
        """Create signer from a Solana CLI wallet file (JSON array of 64 ints).

        Args:
            path: Path to the wallet file.

        Returns:
            KeypairSigner instance.
        """
        with open(path) as f:
            secret = json.load(f)
        return cls.from_bytes(bytes(secret))

"""Settlement transaction construction for the Solana splitter scheme.

Builds unsigned transactions that pay a splitter's three recipients, either
through one ``split_payment`` call to the split program (atomic mode) or
through three TransferChecked instructions (transfers mode).
"""

import asyncio
import base64
import logging
import struct
from dataclasses import dataclass, field

from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    transfer_checked,
)

from ....config import SplitterSettings
from ....errors import InvalidAmount, SplitterNotReady
from ..constants import SYSTEM_PROGRAM_ADDRESS
from ..ledger import Ledger
from ..utils import derive_ata, parse_pubkey
from .constants import (
    INITIALIZE_SPLITTER_DISCRIMINATOR,
    ROLES,
    SPLIT_PAYMENT_DISCRIMINATOR,
    UPDATE_SHARES_DISCRIMINATOR,
)
from .types import SettlementMode, SplitAmounts, SplitterConfig, validate_shares

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


def encode_split_payment(amount: int) -> bytes:
    """Instruction data of ``split_payment(amount: u64)``."""
    if amount < 0 or amount > U64_MAX:
        raise InvalidAmount(f"amount does not fit in u64: {amount}")
    return SPLIT_PAYMENT_DISCRIMINATOR + struct.pack("<Q", amount)


def decode_split_payment(data: bytes) -> int | None:
    """Return the amount of a ``split_payment`` instruction, or None for other data."""
    if len(data) != 16 or data[:8] != SPLIT_PAYMENT_DISCRIMINATOR:
        return None
    return struct.unpack("<Q", data[8:16])[0]


def encode_shares(discriminator: bytes, merchant: int, agent: int, platform: int) -> bytes:
    """Instruction data of ``initialize_splitter`` / ``update_shares`` (three u8 shares)."""
    validate_shares(merchant, agent, platform)
    return discriminator + bytes([merchant, agent, platform])


def split_payment_instruction(
    program_id: str,
    splitter_id: str,
    payer: str,
    payer_token_account: str,
    recipient_token_accounts: tuple[str, str, str],
    amount: int,
) -> Instruction:
    """Build the ``split_payment`` instruction.

    Account order: splitter, payer (signer), payer token account, merchant,
    agent and platform token accounts, token program.
    """
    merchant_ata, agent_ata, platform_ata = recipient_token_accounts
    accounts = [
        AccountMeta(parse_pubkey(splitter_id, "splitter id"), is_signer=False, is_writable=False),
        AccountMeta(parse_pubkey(payer, "payer"), is_signer=True, is_writable=True),
        AccountMeta(Pubkey.from_string(payer_token_account), is_signer=False, is_writable=True),
        AccountMeta(Pubkey.from_string(merchant_ata), is_signer=False, is_writable=True),
        AccountMeta(Pubkey.from_string(agent_ata), is_signer=False, is_writable=True),
        AccountMeta(Pubkey.from_string(platform_ata), is_signer=False, is_writable=True),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(
        parse_pubkey(program_id, "program id"), encode_split_payment(amount), accounts
    )


def initialize_splitter_instruction(program_id: str, config: SplitterConfig) -> Instruction:
    """Build the ``initialize_splitter`` instruction signed by the config's authority."""
    accounts = [
        AccountMeta(parse_pubkey(config.splitter_id, "splitter id"), is_signer=False, is_writable=True),
        AccountMeta(parse_pubkey(config.authority, "authority"), is_signer=True, is_writable=True),
        AccountMeta(parse_pubkey(config.merchant, "merchant"), is_signer=False, is_writable=False),
        AccountMeta(parse_pubkey(config.agent, "agent"), is_signer=False, is_writable=False),
        AccountMeta(parse_pubkey(config.platform, "platform"), is_signer=False, is_writable=False),
        AccountMeta(Pubkey.from_string(SYSTEM_PROGRAM_ADDRESS), is_signer=False, is_writable=False),
    ]
    data = encode_shares(INITIALIZE_SPLITTER_DISCRIMINATOR, *config.shares)
    return Instruction(parse_pubkey(program_id, "program id"), data, accounts)


def update_shares_instruction(
    program_id: str, splitter_id: str, authority: str, merchant: int, agent: int, platform: int
) -> Instruction:
    accounts = [
        AccountMeta(parse_pubkey(splitter_id, "splitter id"), is_signer=False, is_writable=True),
        AccountMeta(parse_pubkey(authority, "authority"), is_signer=True, is_writable=False),
    ]
    data = encode_shares(UPDATE_SHARES_DISCRIMINATOR, merchant, agent, platform)
    return Instruction(parse_pubkey(program_id, "program id"), data, accounts)


def serialize_unsigned(instructions: list[Instruction], fee_payer: Pubkey) -> str:
    """Serialize instructions into an unsigned base64 legacy transaction.

    No signatures are attached and the blockhash is left zeroed; the signer
    binds both at final assembly.
    """
    message = Message(instructions, fee_payer)
    tx = Transaction.new_unsigned(message)
    return base64.b64encode(bytes(tx)).decode("utf-8")


@dataclass
class BuiltTransaction:
    """An unsigned settlement transaction and the split it applies.

    Attributes:
        transaction: Base64 encoded unsigned transaction.
        splits: Amounts recomputed from the stored config.
        mode: Settlement mode in effect.
        recipient_token_accounts: Merchant, agent and platform ATAs.
        created_accounts: ATAs created by this transaction.
    """

    transaction: str
    splits: SplitAmounts
    mode: SettlementMode
    recipient_token_accounts: tuple[str, str, str]
    created_accounts: list[str] = field(default_factory=list)


class TransactionBuilder:
    """Builds unsigned settlement transactions for splitter payments.

    The split table is always recomputed from the stored config; the
    caller only chooses payer and amount.
    """

    def __init__(self, settings: SplitterSettings, ledger: Ledger):
        self._settings = settings
        self._ledger = ledger

    @property
    def mode(self) -> SettlementMode:
        return self._settings.settlement_mode

    def recipient_token_accounts(self, config: SplitterConfig) -> tuple[str, str, str]:
        mint = self._settings.mint
        merchant, agent, platform = (derive_ata(address, mint) for address in config.recipients)
        return (merchant, agent, platform)

    async def build(self, config: SplitterConfig, payer: str, amount: int) -> BuiltTransaction:
        """Build the settlement transaction for one payment.

        Args:
            config: Splitter receiving the payment.
            payer: Payer wallet address; fee payer and token authority.
            amount: Total amount in smallest units.

        Returns:
            BuiltTransaction with the unsigned transaction and its split.

        Raises:
            SplitterNotReady: If the splitter is not initialized on-chain.
            InvalidAddress: If any participant address is malformed.
            InvalidAmount: If amount is not a positive u64.
            LedgerUnavailable: If account lookups fail.
        """
        # 1. Validate inputs
        if not config.on_chain_ready:
            raise SplitterNotReady(f"splitter {config.splitter_id} is not initialized on-chain")
        config.validate()
        payer_pubkey = parse_pubkey(payer, "payer")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")
        if amount > U64_MAX:
            raise InvalidAmount(f"amount does not fit in u64: {amount}")

        # 2. Recompute the split from the stored config
        splits = config.compute_splits(amount)

        # 3. Derive token accounts
        mint = self._settings.mint
        payer_ata = derive_ata(payer, mint)
        recipient_atas = self.recipient_token_accounts(config)

        # Transfers mode skips zero-amount recipients entirely
        needed = [
            (owner, ata)
            for owner, ata, share_amount in zip(config.recipients, recipient_atas, splits.as_tuple())
            if self.mode is SettlementMode.ATOMIC or share_amount > 0
        ]

        # 4. Find missing recipient token accounts (deduplicated, concurrently)
        unique: dict[str, str] = {}
        for owner, ata in needed:
            unique.setdefault(ata, owner)
        exists = await asyncio.gather(*(self._ledger.account_exists(ata) for ata in unique))

        instructions: list[Instruction] = []
        created: list[str] = []
        for (ata, owner), present in zip(unique.items(), exists):
            if present:
                continue
            logger.info("Token account %s of %s missing, adding create instruction", ata, owner)
            instructions.append(
                create_associated_token_account(
                    payer=payer_pubkey,
                    owner=Pubkey.from_string(owner),
                    mint=Pubkey.from_string(mint),
                )
            )
            created.append(ata)

        # 5. Append the value transfer after every account creation
        if self.mode is SettlementMode.ATOMIC:
            instructions.append(
                split_payment_instruction(
                    self._settings.program_id,
                    config.splitter_id,
                    payer,
                    payer_ata,
                    recipient_atas,
                    amount,
                )
            )
        else:
            for role, ata, share_amount in zip(ROLES, recipient_atas, splits.as_tuple()):
                if share_amount == 0:
                    continue
                instructions.append(
                    transfer_checked(
                        TransferCheckedParams(
                            program_id=TOKEN_PROGRAM_ID,
                            source=Pubkey.from_string(payer_ata),
                            mint=Pubkey.from_string(mint),
                            dest=Pubkey.from_string(ata),
                            owner=payer_pubkey,
                            amount=share_amount,
                            decimals=self._settings.decimals,
                        )
                    )
                )

        logger.info(
            "Built %s settlement for splitter %s: %s instructions, %s accounts created",
            self.mode.value,
            config.splitter_id,
            len(instructions),
            len(created),
        )

        return BuiltTransaction(
            transaction=serialize_unsigned(instructions, payer_pubkey),
            splits=splits,
            mode=self.mode,
            recipient_token_accounts=recipient_atas,
            created_accounts=created,
        )

    def build_initialize(self, config: SplitterConfig) -> str:
        """Build the unsigned ``initialize_splitter`` transaction for the authority to sign."""
        config.validate()
        ix = initialize_splitter_instruction(self._settings.program_id, config)
        return serialize_unsigned([ix], parse_pubkey(config.authority, "authority"))

    def build_update_shares(
        self, config: SplitterConfig, merchant: int, agent: int, platform: int
    ) -> str:
        """Build the unsigned ``update_shares`` transaction for the authority to sign."""
        ix = update_shares_instruction(
            self._settings.program_id,
            config.splitter_id,
            config.authority,
            merchant,
            agent,
            platform,
        )
        return serialize_unsigned([ix], parse_pubkey(config.authority, "authority"))

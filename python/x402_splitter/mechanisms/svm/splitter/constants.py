"""Constants for the Solana splitter scheme."""

# Scheme identifier
SCHEME_SPLIT = "split"

# Challenge protocol version
PROTOCOL_VERSION = 1

# Default timeout for split payments (in seconds)
DEFAULT_TIMEOUT_SECONDS = 300

# Default split program (devnet deployment)
DEFAULT_PROGRAM_ID = "8My2SGb47iBJW6D5dkCmfXoRU4cjg1p77aiuHDmwakJo"

# Default fixed price of the protected resource (1 USDC)
DEFAULT_PAYMENT_AMOUNT = 1_000_000

# Recipient roles, in program account order
ROLES = ("merchant", "agent", "platform")

# Anchor instruction discriminators (sha256("global:<name>")[:8])
INITIALIZE_SPLITTER_DISCRIMINATOR = bytes([81, 111, 81, 77, 41, 36, 149, 189])
SPLIT_PAYMENT_DISCRIMINATOR = bytes([142, 211, 58, 150, 156, 255, 35, 37])
UPDATE_SHARES_DISCRIMINATOR = bytes([31, 59, 15, 141, 227, 50, 179, 253])

# Program error codes
PROGRAM_ERROR_INVALID_SHARES = 6000

# Proof headers
PROOF_SIGNATURE_HEADER = "proof-signature"
PAYER_IDENTITY_HEADER = "payer-identity"

# Denial reasons carried by challenge-shaped errors
ERR_SPLIT_INSTRUCTION_MISSING = "split_instruction_missing"
ERR_SPLITTER_MISMATCH = "splitter_account_mismatch"
ERR_RECIPIENT_MISMATCH = "recipient_account_mismatch"
ERR_AMOUNT_INSUFFICIENT = "amount_insufficient"
ERR_PROOF_REUSED = "proof_bound_to_other_splitter"

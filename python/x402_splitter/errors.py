"""Error types for the x402 splitter protocol.

Every error carries a machine-readable ``reason``, whether the caller may
retry with the same inputs, and the HTTP status the server renders it with.
"""


class SplitterError(Exception):
    """Base class for splitter protocol errors.

    Attributes:
        reason: Machine-readable reason code.
        message: Human-readable message (if available).
        retryable: Whether retrying with the same inputs can succeed.
        status_code: HTTP status used when rendered by the server.
    """

    reason = "splitter_error"
    retryable = False
    status_code = 500

    def __init__(self, message: str | None = None):
        self.message = message
        super().__init__(f"{self.reason}: {message}" if message else self.reason)

    def to_dict(self) -> dict:
        return {
            "error": self.reason,
            "message": self.message or self.reason,
            "retryable": self.retryable,
        }


# --- Configuration errors ---


class InvalidShares(SplitterError):
    """Recipient percentages are out of range or do not sum to 100."""

    reason = "invalid_shares"
    status_code = 400


class InvalidAmount(SplitterError):
    """Payment amount is negative, zero where a payment is required, or not an integer."""

    reason = "invalid_amount"
    status_code = 400


class InvalidAddress(SplitterError):
    """A participant identity is not a valid base58 public key."""

    reason = "invalid_address"
    status_code = 400


class InvalidDerivation(SplitterError):
    """Supplied splitter id does not match the derivation from its authority."""

    reason = "invalid_splitter_address"
    status_code = 400


class SplitterNotReady(SplitterError):
    """Splitter exists but has no confirmed on-ledger initialization."""

    reason = "splitter_not_ready"
    status_code = 400


class SplitterNotFound(SplitterError):
    reason = "splitter_not_found"
    status_code = 404


class DuplicateSplitter(SplitterError):
    reason = "splitter_exists"
    status_code = 409


class NotAuthority(SplitterError):
    """Mutation attempted by an identity other than the splitter's authority."""

    reason = "not_authority"
    status_code = 403


class InitializationFailed(SplitterError):
    reason = "initialization_failed"
    status_code = 400


class UpdateFailed(SplitterError):
    reason = "update_failed"
    status_code = 400


class StaleUpdate(SplitterError):
    """Share update confirmed no later than the shares already applied."""

    reason = "stale_update"
    status_code = 409


# --- Proof errors ---


class ProofNotFound(SplitterError):
    """Ledger has no (final) transaction for the proof yet.

    Retryable: the transaction may not have reached finality.
    """

    reason = "proof_not_found"
    retryable = True
    status_code = 402


class PaymentFailed(SplitterError):
    """Ledger reports the referenced transaction executed with an error.

    Not retryable with the same proof; the caller must pay again.
    """

    reason = "payment_failed"
    status_code = 402


class ProofMismatch(PaymentFailed):
    """Proof transaction succeeded but does not settle the expected split."""

    reason = "proof_mismatch"


class LedgerUnavailable(SplitterError):
    """Transient I/O failure talking to the ledger."""

    reason = "ledger_unavailable"
    retryable = True
    status_code = 503


# --- Client-side errors ---


class InvalidChallenge(SplitterError):
    """A 402 body could not be parsed as a payment challenge."""

    reason = "invalid_challenge"


class SplitMismatch(SplitterError):
    """Advertised split does not match the independently recomputed split."""

    reason = "split_mismatch"


class ChallengeLoop(SplitterError):
    """Server answered the proof-carrying retry with a fresh challenge."""

    reason = "challenge_loop"


# --- Request errors ---


class InvalidRequest(SplitterError):
    """Request body is not valid JSON or does not match its schema."""

    reason = "invalid_request"
    status_code = 400


def error_from_reason(reason: str, message: str | None = None) -> SplitterError:
    """Rebuild a typed error from a wire ``error`` reason.

    Unknown reasons map to the base ``SplitterError``.
    """
    for cls in _all_subclasses(SplitterError):
        if cls.reason == reason:
            return cls(message)
    error = SplitterError(message)
    error.reason = reason
    return error


def _all_subclasses(cls: type) -> list[type]:
    result = []
    for sub in cls.__subclasses__():
        result.append(sub)
        result.extend(_all_subclasses(sub))
    return result

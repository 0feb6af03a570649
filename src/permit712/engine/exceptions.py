"""
Exception and Error Definitions Module

Defines the exception hierarchy for typed-data construction, capability
detection, signing and execution. All exceptions inherit from
``Permit712Error`` for unified exception handling.

Exception Hierarchy:
    Permit712Error (root)
    ├── ValidationError
    │   ├── InvalidAddress
    │   ├── InvalidAmount
    │   │   └── AmountPrecisionExceeded
    │   ├── MalformedSignature
    │   └── ConfigurationError
    ├── ChainReadError
    │   ├── ContractReverted
    │   └── OutputDecodeError
    ├── MetadataUnavailable
    ├── PermitUnsupported
    ├── NonceUnavailable
    ├── MacroEncodingFailed
    ├── SignerRejected
    ├── ChainMismatchError
    ├── SignRequestInFlight
    ├── InvalidTransition
    └── ExecutionError
        ├── SubmissionFailed
        ├── RelayTransportError
        └── RelayRejected

Local validation errors (``ValidationError`` subclasses) are raised before
any network call is made. Chain-read and signer failures are surfaced as-is
and never retried.
"""

from typing import Optional


class Permit712Error(Exception):
    """
    Root exception class for all project-specific exceptions.

    All custom exceptions inherit from this class to enable unified
    exception handling and centralized error processing.
    """
    pass


# ==================== Local validation ====================

class ValidationError(Permit712Error):
    """
    Raised when caller-supplied input is rejected locally.

    Always raised synchronously, before any chain read, signing prompt or
    transaction submission.
    """
    pass


class InvalidAddress(ValidationError):
    """
    Raised when an address is not a 0x-prefixed, 20-byte hex string.

    Attributes:
        field: Name of the offending input (e.g. ``"spender"``)
        value: The rejected value
    """

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field} address: {value!r}")


class InvalidAmount(ValidationError):
    """
    Raised when a human-readable amount or rate cannot be parsed, is
    negative/zero where a positive value is required, or does not fit the
    target integer type.
    """
    pass


class AmountPrecisionExceeded(InvalidAmount):
    """
    Raised when an amount carries more fractional digits than the token's
    ``decimals`` allow. Such amounts are rejected, never truncated.

    Attributes:
        amount: The rejected amount string
        decimals: Token decimals used for scaling
    """

    def __init__(self, amount: object, decimals: int):
        self.amount = amount
        self.decimals = decimals
        super().__init__(
            f"amount {amount!r} has more than {decimals} fractional digits"
        )


class MalformedSignature(ValidationError):
    """
    Raised when a signature is not exactly 65 bytes of hex after removing an
    optional ``0x`` prefix.
    """
    pass


class ConfigurationError(ValidationError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Forwarder or macro address not configured for the selected chain
    - Relayer endpoint not configured
    - No RPC endpoint known for the selected chain
    """
    pass


# ==================== Chain reads ====================

class ChainReadError(Permit712Error):
    """
    Raised when a read-only contract call fails for a reason other than a
    revert or an output decoding problem (RPC timeout, connectivity, ...).

    Attributes:
        contract: Contract address that was called
        function: Function name that was called
    """

    def __init__(self, message: str, contract: Optional[str] = None, function: Optional[str] = None):
        self.contract = contract
        self.function = function
        super().__init__(message)


class ContractReverted(ChainReadError):
    """Raised when the called contract reverted (or has no code at the address)."""
    pass


class OutputDecodeError(ChainReadError):
    """
    Raised when the call succeeded but its return data could not be decoded
    against the expected output types (out-of-range / short data).
    """
    pass


# ==================== Resolution ====================

class MetadataUnavailable(Permit712Error):
    """
    Raised when ERC-20 metadata (name, symbol, decimals) cannot be read.

    The address is not a contract, or one of the calls reverted or failed to
    decode. No partial metadata is ever returned.
    """
    pass


class PermitUnsupported(Permit712Error):
    """Raised when a token exposes neither ``nonces`` nor ``DOMAIN_SEPARATOR``."""
    pass


class NonceUnavailable(Permit712Error):
    """Raised when a token or forwarder nonce read fails."""
    pass


class MacroEncodingFailed(Permit712Error):
    """
    Raised when the macro's description/params call, or the forwarder's
    ``encodeParams`` call, reverted or failed.
    """
    pass


# ==================== Signing ====================

class SignerRejected(Permit712Error):
    """Raised when the external signer refused or failed to sign."""
    pass


class ChainMismatchError(Permit712Error):
    """
    Raised when typed data was built for a chain other than the one the
    signer is connected to at signing time.

    Attributes:
        expected: Chain id the request was built for
        connected: Chain id reported by the signer
    """

    def __init__(self, expected: int, connected: int):
        self.expected = expected
        self.connected = connected
        super().__init__(
            f"Request built for chain {expected} but signer is connected to chain {connected}"
        )


class SignRequestInFlight(Permit712Error):
    """Raised when a sign request for the same logical action is already pending."""
    pass


class InvalidTransition(Permit712Error):
    """
    Raised when an execution request receives an event that is not valid
    for its current state.

    Attributes:
        current_state: Current execution state
        target_state: Requested state
    """

    def __init__(self, current_state: object, target_state: object):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(f"Invalid transition {current_state} -> {target_state}")


# ==================== Execution ====================

class ExecutionError(Permit712Error):
    """Base exception for failures after a signature exists."""
    pass


class SubmissionFailed(ExecutionError):
    """
    Raised when a direct (wallet) submission fails.

    ``submitted`` separates the two recovery paths: ``False`` means the
    transaction never reached the chain (provider error, user rejection of
    the transaction) and can be resubmitted with the same signature; ``True``
    means it was mined and reverted, which usually requires re-signing.

    Attributes:
        submitted: Whether a transaction hash was obtained
        tx_hash: Transaction hash if available
    """

    def __init__(self, message: str, submitted: bool = False, tx_hash: Optional[str] = None):
        self.submitted = submitted
        self.tx_hash = tx_hash
        super().__init__(message)


class RelayTransportError(ExecutionError):
    """
    Raised when the relayer could not be reached or answered with a non-2xx
    status. The signature is still valid; retrying the relay call is safe.

    Attributes:
        status_code: HTTP status code, ``None`` for network failures
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RelayRejected(ExecutionError):
    """
    Raised when the relayer accepted the request but reported
    ``status: "failed"`` (on-chain or relayer-side rejection).
    """
    pass

from .dispatcher import ExecutionDispatcher
from .exceptions import (
    Permit712Error,
    ValidationError,
    InvalidAddress,
    InvalidAmount,
    AmountPrecisionExceeded,
    MalformedSignature,
    ConfigurationError,
    ChainReadError,
    ContractReverted,
    OutputDecodeError,
    MetadataUnavailable,
    PermitUnsupported,
    NonceUnavailable,
    MacroEncodingFailed,
    SignerRejected,
    ChainMismatchError,
    SignRequestInFlight,
    InvalidTransition,
    ExecutionError,
    SubmissionFailed,
    RelayTransportError,
    RelayRejected,
)

__all__ = [
    "ExecutionDispatcher",
    "Permit712Error",
    "ValidationError",
    "InvalidAddress",
    "InvalidAmount",
    "AmountPrecisionExceeded",
    "MalformedSignature",
    "ConfigurationError",
    "ChainReadError",
    "ContractReverted",
    "OutputDecodeError",
    "MetadataUnavailable",
    "PermitUnsupported",
    "NonceUnavailable",
    "MacroEncodingFailed",
    "SignerRejected",
    "ChainMismatchError",
    "SignRequestInFlight",
    "InvalidTransition",
    "ExecutionError",
    "SubmissionFailed",
    "RelayTransportError",
    "RelayRejected",
]

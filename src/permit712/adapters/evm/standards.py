import json
from dataclasses import dataclass, field
from typing import Dict, Any, List

from eth_account.messages import encode_typed_data
from eth_utils import keccak


# -----------------------------
# EIP-712 Domain
# -----------------------------

EIP712_DOMAIN_TYPE: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Used to prevent signature replay across domains.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


def stringify_integers(value: Any) -> Any:
    """
    Copy a typed-data value with every integer rendered as a decimal string.

    uint256 and int96 values must not travel as JSON numbers; wallets parse
    those as doubles.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {key: stringify_integers(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [stringify_integers(item) for item in value]
    return value


def typed_data_to_json(typed_data: Dict[str, Any]) -> str:
    """Serialize a ``to_dict()`` payload for ``eth_signTypedData_v4``."""
    return json.dumps(stringify_integers(typed_data))


# -----------------------------
# Typed-data envelope
# -----------------------------

@dataclass
class TypedDataEnvelope:
    """
    Complete EIP-712 payload: domain, type definitions, primary type and message.

    ``to_dict()`` yields the ``{types, primaryType, domain, message}`` layout
    consumed by ``eth_account.Account.sign_typed_data`` and by wallets through
    ``eth_signTypedData_v4``. Type definitions are ordered lists, so the field
    order of every struct is fixed and the payload is deterministic for equal
    inputs.

    Attributes:
        domain: EIP712Domain instance describing the signing domain.
        message: Message object exposing ``to_dict()``.
        primary_type: The primary EIP-712 type.
        types: Type definitions, including ``EIP712Domain``.
    """
    domain: EIP712Domain
    message: Any
    primary_type: str = ""
    types: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)

    @property
    def chain_id(self) -> int:
        return self.domain.chainId

    def to_dict(self) -> Dict[str, Any]:
        """Return a dictionary compatible with EIP-712 structured signing."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }

    def to_json_payload(self) -> str:
        """Wire form for ``eth_signTypedData_v4``: integers as decimal strings."""
        return typed_data_to_json(self.to_dict())

    def digest(self) -> str:
        """
        Return the EIP-712 signing hash (``keccak256(0x1901 || domainSeparator || structHash)``).

        Used for audit logging and to correlate a signature with the exact
        payload it covers.
        """
        signable = encode_typed_data(full_message=self.to_dict())
        return "0x" + keccak(b"\x19" + signable.version + signable.header + signable.body).hex()


# -----------------------------
# EIP-2612: Permit
# -----------------------------

@dataclass
class PermitMessage:
    """
    Message payload of an EIP-2612 ``Permit``.

    Attributes:
        owner: Token owner granting the allowance.
        spender: Address allowed to spend.
        value: Allowance in the token's smallest unit (uint256).
        nonce: Owner's current ``nonces(owner)`` value.
        deadline: Unix timestamp after which the permit is invalid.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


@dataclass
class PermitTypedData(TypedDataEnvelope):
    """EIP-2612 typed data: ``Permit(owner, spender, value, nonce, deadline)``."""
    primary_type: str = "Permit"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(EIP712_DOMAIN_TYPE),
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        }
    )


# -----------------------------
# ScheduleFlow (FlowScheduler macro via Only712MacroForwarder)
# -----------------------------

@dataclass
class ScheduleFlowAction:
    """
    ``Action`` struct of a ScheduleFlow payload.

    ``description`` is the human-readable text returned by the macro contract
    for these exact parameters; wallets display it to the signer.
    ``userData`` is kept as a 0x-prefixed hex string.
    """
    description: str
    superToken: str
    receiver: str
    startDate: int
    startMaxDelay: int
    flowRate: int
    startAmount: int
    endDate: int
    userData: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "superToken": self.superToken,
            "receiver": self.receiver,
            "startDate": self.startDate,
            "startMaxDelay": self.startMaxDelay,
            "flowRate": self.flowRate,
            "startAmount": self.startAmount,
            "endDate": self.endDate,
            "userData": self.userData,
        }


@dataclass
class ScheduleFlowSecurityMessage:
    """``Security`` struct of a ScheduleFlow payload."""
    domain: str
    provider: str
    validAfter: int
    validBefore: int
    nonce: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "provider": self.provider,
            "validAfter": self.validAfter,
            "validBefore": self.validBefore,
            "nonce": self.nonce,
        }


@dataclass
class ScheduleFlowMessage:
    action: ScheduleFlowAction
    security: ScheduleFlowSecurityMessage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "security": self.security.to_dict(),
        }


@dataclass
class ScheduleFlowTypedData(TypedDataEnvelope):
    """
    Clear-signing typed data for a FlowScheduler ``createFlowSchedule`` macro.

    Domain is ``{name: "ClearSigning", version: "1", chainId, verifyingContract: forwarder}``.
    """
    primary_type: str = "ScheduleFlow"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(EIP712_DOMAIN_TYPE),
            "ScheduleFlow": [
                {"name": "action", "type": "Action"},
                {"name": "security", "type": "Security"},
            ],
            "Action": [
                {"name": "description", "type": "string"},
                {"name": "superToken", "type": "address"},
                {"name": "receiver", "type": "address"},
                {"name": "startDate", "type": "uint32"},
                {"name": "startMaxDelay", "type": "uint32"},
                {"name": "flowRate", "type": "int96"},
                {"name": "startAmount", "type": "uint256"},
                {"name": "endDate", "type": "uint32"},
                {"name": "userData", "type": "bytes"},
            ],
            "Security": [
                {"name": "domain", "type": "string"},
                {"name": "provider", "type": "string"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
            ],
        }
    )

"""
EVM Adapter Schema Models

Pydantic models for the inputs and outputs of the typed-data builders.
All classes inherit from ``CanonicalModel`` in ``schemas.bases``.

Resolution classes:
    - TokenMetadata: ERC-20 name/symbol/decimals plus capability flags.
    - EIP712DomainFields: Decoded EIP-5267 ``eip712Domain()`` result.

Request classes:
    - PermitParameters: Everything needed to submit an EIP-2612 ``permit()``.
    - ScheduleFlowParams: FlowScheduler ``CreateFlowScheduleParams`` struct.
    - ScheduleFlowSecurity: Forwarder security envelope (domain, provider, validity, nonce).

Signature classes:
    - SignatureParts: The r/s/v split of a 65-byte signature.

Address fields are validated and checksummed on construction; integer
fields are range-checked against their Solidity types. Both raise the
package's own ``InvalidAddress`` / ``InvalidAmount``.
"""

from typing import Optional, Tuple

from pydantic import ConfigDict, Field, field_validator

from ...engine.exceptions import InvalidAmount
from ...schemas.bases import CanonicalModel
from .constants import (
    MAX_INT96,
    MAX_UINT256,
    MAX_UINT32,
    MIN_INT96,
    normalize_user_data,
    to_checksum,
)


def _check_range(name: str, value: int, low: int, high: int) -> int:
    if not low <= value <= high:
        raise InvalidAmount(f"{name}={value} is out of range [{low}, {high}]")
    return value


class TokenMetadata(CanonicalModel):
    """
    ERC-20 metadata of one token on one chain.

    Immutable once resolved. ``supports_permit`` and ``used_eip5267`` hold the
    outcome of the permit and EIP-5267 probes; ``None`` when the probe was not
    run or could not reach a verdict. ``used_eip5267`` says whether the token
    answers ``eip712Domain()``, not whether the domain version was taken from it.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., description="Token contract address (checksum)")
    chain_id: int = Field(..., description="Chain the metadata was read from")
    name: str
    symbol: str
    decimals: int = Field(..., ge=0, le=255)
    supports_permit: Optional[bool] = None
    used_eip5267: Optional[bool] = None


class EIP712DomainFields(CanonicalModel):
    """
    Decoded EIP-5267 ``eip712Domain()`` return value.

    Attributes:
        fields: Bitmap of the domain fields in use (bytes1 as int)
        name: Domain name
        version: Domain version
        chain_id: Domain chainId
        verifying_contract: Domain verifyingContract
        salt: Domain salt (0x-prefixed bytes32 hex)
        extensions: EIP-5267 extension ids
    """

    model_config = ConfigDict(frozen=True)

    fields: int = Field(..., ge=0, le=0xFF)
    name: str
    version: str
    chain_id: int
    verifying_contract: str
    salt: str
    extensions: Tuple[int, ...] = ()

    def has_version(self) -> bool:
        # bit 1 of the fields bitmap marks "version" as part of the domain
        return bool(self.fields & 0x02)


class PermitParameters(CanonicalModel):
    """
    EIP-2612 ``permit()`` arguments, minus the signature.

    Created once per sign request and never mutated. Re-signing builds a new
    instance with a fresh nonce and deadline.
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    spender: str
    value: int = Field(..., description="Allowance in the token's smallest unit")
    deadline: int = Field(..., description="Unix timestamp after which the permit is invalid")
    token_address: str
    chain_id: int
    nonce: int

    @field_validator("owner", "spender", "token_address")
    @classmethod
    def _checksum_address(cls, v: str, info) -> str:
        return to_checksum(info.field_name, v)

    @field_validator("value", "deadline", "nonce")
    @classmethod
    def _uint256(cls, v: int, info) -> int:
        return _check_range(info.field_name, v, 0, MAX_UINT256)


class ScheduleFlowParams(CanonicalModel):
    """
    FlowScheduler ``CreateFlowScheduleParams``.

    Attributes:
        super_token: Super token that will be streamed
        receiver: Stream receiver
        start_date: Unix start timestamp (uint32)
        start_max_delay: Seconds after ``start_date`` the start may still execute (uint32)
        flow_rate: Wei per second (int96)
        start_amount: One-off amount transferred at start (uint256)
        end_date: Unix end timestamp (uint32), 0 for open-ended
        user_data: 0x-prefixed lowercase hex
    """

    model_config = ConfigDict(frozen=True)

    super_token: str
    receiver: str
    start_date: int
    start_max_delay: int
    flow_rate: int
    start_amount: int = 0
    end_date: int
    user_data: str = "0x"

    @field_validator("super_token", "receiver")
    @classmethod
    def _checksum_address(cls, v: str, info) -> str:
        return to_checksum(info.field_name, v)

    @field_validator("start_date", "start_max_delay", "end_date")
    @classmethod
    def _uint32(cls, v: int, info) -> int:
        return _check_range(info.field_name, v, 0, MAX_UINT32)

    @field_validator("flow_rate")
    @classmethod
    def _int96(cls, v: int) -> int:
        return _check_range("flow_rate", v, MIN_INT96, MAX_INT96)

    @field_validator("start_amount")
    @classmethod
    def _uint256(cls, v: int) -> int:
        return _check_range("start_amount", v, 0, MAX_UINT256)

    @field_validator("user_data", mode="before")
    @classmethod
    def _hex_user_data(cls, v) -> str:
        if isinstance(v, (bytes, bytearray)):
            return "0x" + bytes(v).hex()
        return normalize_user_data(v)

    @property
    def user_data_bytes(self) -> bytes:
        return bytes.fromhex(self.user_data[2:])

    def to_abi_tuple(self) -> tuple:
        """Positional tuple in struct order, as consumed by web3 for the ``cfsParams`` argument."""
        return (
            self.super_token,
            self.receiver,
            self.start_date,
            self.start_max_delay,
            self.flow_rate,
            self.start_amount,
            self.end_date,
            self.user_data_bytes,
        )


class ScheduleFlowSecurity(CanonicalModel):
    """
    Forwarder security envelope.

    ``nonce`` is fetched fresh from the forwarder for every signing attempt.
    ``valid_before == 0`` means no expiry.
    """

    model_config = ConfigDict(frozen=True)

    domain: str
    provider: str
    valid_after: int = 0
    valid_before: int = 0
    nonce: int

    @field_validator("valid_after", "valid_before", "nonce")
    @classmethod
    def _uint256(cls, v: int, info) -> int:
        return _check_range(info.field_name, v, 0, MAX_UINT256)

    def to_abi_tuple(self) -> tuple:
        return (self.domain, self.provider, self.valid_after, self.valid_before, self.nonce)


class SignatureParts(CanonicalModel):
    """
    The r/s/v split of a 65-byte ``r || s || v`` signature.

    ``v`` is carried through unchanged (27/28 from most wallets, 0/1 from some
    signers); the contract decides what it accepts.

    Example::

        parts = split_signature("0x" + "11" * 32 + "22" * 32 + "1b")
        parts.v            # 27
        parts.r_hex        # "0x1111...11"
        parts.to_packed_bytes()  # 65 bytes for runMacro / the relayer
    """

    model_config = ConfigDict(frozen=True)

    r: bytes = Field(..., description="First 32 bytes")
    s: bytes = Field(..., description="Second 32 bytes")
    v: int = Field(..., ge=0, le=255, description="Final byte")

    @field_validator("r", "s")
    @classmethod
    def _bytes32(cls, v: bytes, info) -> bytes:
        if len(v) != 32:
            raise ValueError(f"{info.field_name} must be 32 bytes, got {len(v)}")
        return v

    @property
    def r_hex(self) -> str:
        return "0x" + self.r.hex()

    @property
    def s_hex(self) -> str:
        return "0x" + self.s.hex()

    def to_packed_bytes(self) -> bytes:
        return self.r + self.s + bytes([self.v])

    def to_hex(self) -> str:
        return "0x" + self.to_packed_bytes().hex()

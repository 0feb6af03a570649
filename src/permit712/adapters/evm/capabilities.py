"""
Token Capability Resolution

Reads ERC-20 metadata and detects optional on-chain capabilities of a token:

    - EIP-2612 permit support (``nonces`` / ``DOMAIN_SEPARATOR`` probes)
    - EIP-5267 domain introspection (``eip712Domain``)

Probes return a tri-state ``ProbeOutcome`` so that "the function is absent"
and "the node could not be asked" are never confused. The boolean
``check_*`` helpers collapse ``INDETERMINATE`` to ``False``.

Permit domain values are resolved in this order: static ``DOMAIN_OVERRIDES``
entry, then the EIP-5267 ``eip712Domain()`` version, then ``"1"``.
"""

import asyncio
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from ...engine.exceptions import (
    ChainReadError,
    ContractReverted,
    MetadataUnavailable,
    OutputDecodeError,
)
from ...utils import logger
from ..bases import ChainReader
from .constants import (
    DOMAIN_OVERRIDES,
    PERMIT_DOMAIN_VERSION,
    ZERO_ADDRESS,
    DomainOverride,
    to_checksum,
)
from .ERC20_ABI import (
    get_decimals_abi,
    get_domain_separator_abi,
    get_eip712_domain_abi,
    get_eip712_domain_probe_abi,
    get_name_abi,
    get_nonces_abi,
    get_symbol_abi,
)
from .schemas import EIP712DomainFields, TokenMetadata


#: ``eip712Domain()`` is probed with an empty outputs ABI. A contract that
#: implements it returns data the empty ABI cannot account for, which some
#: providers report as a decode-range error: that means the function exists.
DECODE_RANGE_ERROR_IS_SUPPORTED: bool = True


class ProbeOutcome(str, Enum):
    """
    Result of a capability probe.

    Attributes:
        SUPPORTED: The capability was observed
        UNSUPPORTED: The contract answered and the capability is absent
        INDETERMINATE: The node could not be queried (transport failure)
    """
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"
    INDETERMINATE = "indeterminate"


class TokenCapabilityResolver:
    """
    Resolves token metadata, permit support and permit domain parameters.

    Metadata is cached per ``(chain_id, token)``; a change of either key
    re-resolves. Results containing an indeterminate probe are not cached.

    Args:
        reader: ChainReader used for every contract call
        overrides: Domain override table (defaults to ``DOMAIN_OVERRIDES``)

    Example::

        resolver = TokenCapabilityResolver(Web3ChainReader())
        meta = await resolver.resolve_metadata(usdc, 11155111)
        if meta.supports_permit:
            ...
    """

    def __init__(
        self,
        reader: ChainReader,
        overrides: Optional[Mapping[Tuple[int, str], DomainOverride]] = None,
    ):
        self._reader = reader
        self._overrides = DOMAIN_OVERRIDES if overrides is None else overrides
        self._cache: Dict[Tuple[int, str], TokenMetadata] = {}

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def read_name(self, token: str, chain_id: int) -> str:
        return await self._read_metadata_field(token, chain_id, get_name_abi())

    async def read_symbol(self, token: str, chain_id: int) -> str:
        return await self._read_metadata_field(token, chain_id, get_symbol_abi())

    async def read_decimals(self, token: str, chain_id: int) -> int:
        return int(await self._read_metadata_field(token, chain_id, get_decimals_abi()))

    async def _read_metadata_field(self, token: str, chain_id: int, abi: dict):
        try:
            return await self._reader.read(chain_id, token, abi)
        except ChainReadError as e:
            raise MetadataUnavailable(
                f"Failed to read {abi['name']}() of {token} on chain {chain_id}: {e}"
            ) from e

    async def resolve_metadata(self, token: str, chain_id: int) -> TokenMetadata:
        """
        Read ``name``, ``symbol`` and ``decimals`` concurrently, then run both probes.

        Raises:
            InvalidAddress: ``token`` is not an address.
            MetadataUnavailable: Any of the three metadata reads failed.
        """
        token = to_checksum("token", token)
        key = (chain_id, token.lower())
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        name, symbol, decimals = await asyncio.gather(
            self.read_name(token, chain_id),
            self.read_symbol(token, chain_id),
            self.read_decimals(token, chain_id),
        )
        permit_outcome, eip5267_outcome = await asyncio.gather(
            self.probe_permit_support(token, chain_id),
            self.probe_eip5267(token, chain_id),
        )

        metadata = TokenMetadata(
            token=token,
            chain_id=chain_id,
            name=name,
            symbol=symbol,
            decimals=decimals,
            supports_permit=_as_optional_bool(permit_outcome),
            used_eip5267=_as_optional_bool(eip5267_outcome),
        )
        if ProbeOutcome.INDETERMINATE not in (permit_outcome, eip5267_outcome):
            self._cache[key] = metadata
        logger.debug(f"Resolved metadata for {token} on chain {chain_id}: {metadata.to_canonical_json()}")
        return metadata

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    async def probe_permit_support(self, token: str, chain_id: int) -> ProbeOutcome:
        """
        Probe EIP-2612 support: ``nonces(0x0)``, then ``DOMAIN_SEPARATOR()`` if that fails.

        Neither call alone is authoritative across deployed ERC-20 variants,
        so the token is considered permit-capable if either succeeds.
        """
        first = await self._probe(chain_id, token, get_nonces_abi(), (ZERO_ADDRESS,))
        if first is ProbeOutcome.SUPPORTED:
            return first
        second = await self._probe(chain_id, token, get_domain_separator_abi())
        if second is ProbeOutcome.SUPPORTED:
            return second
        if ProbeOutcome.INDETERMINATE in (first, second):
            return ProbeOutcome.INDETERMINATE
        return ProbeOutcome.UNSUPPORTED

    async def probe_eip5267(self, token: str, chain_id: int) -> ProbeOutcome:
        """
        Probe EIP-5267 support by calling ``eip712Domain()`` without decoding outputs.

        A revert means unsupported. A decode-range error is treated as
        supported while ``DECODE_RANGE_ERROR_IS_SUPPORTED`` holds.
        """
        try:
            await self._reader.read(chain_id, token, get_eip712_domain_probe_abi())
        except ContractReverted:
            return ProbeOutcome.UNSUPPORTED
        except OutputDecodeError:
            logger.debug(f"eip712Domain() of {token} returned undecodable data")
            if DECODE_RANGE_ERROR_IS_SUPPORTED:
                return ProbeOutcome.SUPPORTED
            return ProbeOutcome.UNSUPPORTED
        except ChainReadError as e:
            logger.warning(f"eip712Domain() probe of {token} on chain {chain_id} failed: {e}")
            return ProbeOutcome.INDETERMINATE
        return ProbeOutcome.SUPPORTED

    async def _probe(self, chain_id: int, token: str, abi: dict, args: tuple = ()) -> ProbeOutcome:
        try:
            await self._reader.read(chain_id, token, abi, args)
        except (ContractReverted, OutputDecodeError):
            return ProbeOutcome.UNSUPPORTED
        except ChainReadError as e:
            logger.warning(f"{abi['name']}() probe of {token} on chain {chain_id} failed: {e}")
            return ProbeOutcome.INDETERMINATE
        return ProbeOutcome.SUPPORTED

    async def check_permit_support(self, token: str, chain_id: int) -> bool:
        return await self.probe_permit_support(token, chain_id) is ProbeOutcome.SUPPORTED

    async def check_eip5267(self, token: str, chain_id: int) -> bool:
        return await self.probe_eip5267(token, chain_id) is ProbeOutcome.SUPPORTED

    # ------------------------------------------------------------------
    # Domain
    # ------------------------------------------------------------------

    async def read_eip712_domain(self, token: str, chain_id: int) -> Optional[EIP712DomainFields]:
        """
        Fully decode ``eip712Domain()``.

        Returns:
            EIP712DomainFields, or None when the call reverted or the data did
            not decode against the EIP-5267 layout.

        Raises:
            ChainReadError: Transport failure.
        """
        try:
            result = await self._reader.read(chain_id, token, get_eip712_domain_abi())
        except (ContractReverted, OutputDecodeError):
            return None

        fields, name, version, domain_chain_id, verifying_contract, salt, extensions = result
        return EIP712DomainFields(
            fields=int.from_bytes(bytes(fields), "big"),
            name=name,
            version=version,
            chain_id=domain_chain_id,
            verifying_contract=verifying_contract,
            salt="0x" + bytes(salt).hex(),
            extensions=tuple(extensions),
        )

    def get_domain_override(self, token: str, chain_id: int) -> Optional[DomainOverride]:
        return self._overrides.get((chain_id, token.lower()))

    async def resolve_permit_domain(self, token: str, chain_id: int) -> Tuple[str, int, Optional[bool]]:
        """
        Resolve the permit domain ``version`` and ``chainId`` of ``token``.

        Returns:
            ``(version, domain_chain_id, used_eip5267)`` where ``used_eip5267``
            is the EIP-5267 probe result, None when an override made the probe
            unnecessary or its outcome was indeterminate.
        """
        override = self.get_domain_override(token, chain_id)
        version = override.version if override is not None else None
        domain_chain_id = chain_id
        if override is not None and override.chain_id is not None:
            domain_chain_id = override.chain_id

        used_eip5267: Optional[bool] = None
        if version is None:
            outcome = await self.probe_eip5267(token, chain_id)
            used_eip5267 = _as_optional_bool(outcome)
            if outcome is ProbeOutcome.SUPPORTED:
                fields = await self.read_eip712_domain(token, chain_id)
                if fields is not None and fields.version:
                    version = fields.version

        return version or PERMIT_DOMAIN_VERSION, domain_chain_id, used_eip5267


def _as_optional_bool(outcome: ProbeOutcome) -> Optional[bool]:
    if outcome is ProbeOutcome.INDETERMINATE:
        return None
    return outcome is ProbeOutcome.SUPPORTED

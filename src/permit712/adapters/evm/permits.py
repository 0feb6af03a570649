"""
EIP-2612 Permit Typed-Data Builder

Builds the ``Permit`` EIP-712 payload for an ERC-20 token from a
human-readable amount. Signing happens elsewhere (an external ``Signer``);
this module only reads chain state and assembles the payload.

Exported
--------
build_permit_typed_data
    Pure helper wrapping ``PermitParameters`` and resolved domain values in a
    ``PermitTypedData`` envelope.

PermitTypedDataBuilder
    Validates inputs, checks permit support, reads metadata + nonce
    concurrently and returns ``(envelope, params, metadata)``.
"""

import asyncio
import time
from typing import Callable, Optional, Tuple

from ...engine.exceptions import (
    ChainReadError,
    NonceUnavailable,
    PermitUnsupported,
)
from ...utils import logger
from ..bases import ChainReader
from .capabilities import ProbeOutcome, TokenCapabilityResolver
from .constants import (
    PERMIT_DEADLINE_SECONDS,
    amount_to_value,
    parse_amount,
    to_checksum,
)
from .ERC20_ABI import get_nonces_abi
from .schemas import PermitParameters, TokenMetadata
from .standards import EIP712Domain, PermitMessage, PermitTypedData


def build_permit_typed_data(
    params: PermitParameters,
    *,
    domain_name: str,
    domain_version: str,
    domain_chain_id: Optional[int] = None,
) -> PermitTypedData:
    """
    Wrap ``params`` in an EIP-2612 ``PermitTypedData`` envelope.

    Args:
        params: Permit arguments (owner, spender, value, nonce, deadline, token, chain)
        domain_name: Token ``name()``
        domain_version: Permit domain version (``"1"`` unless overridden)
        domain_chain_id: Domain chainId when a static override pins it;
            defaults to ``params.chain_id``

    Returns:
        ``PermitTypedData`` whose ``to_dict()`` is compatible with
        ``eth_account.Account.sign_typed_data`` and ``eth_signTypedData_v4``.
    """
    domain = EIP712Domain(
        name=domain_name,
        version=domain_version,
        chainId=params.chain_id if domain_chain_id is None else domain_chain_id,
        verifyingContract=params.token_address,
    )
    message = PermitMessage(
        owner=params.owner,
        spender=params.spender,
        value=params.value,
        nonce=params.nonce,
        deadline=params.deadline,
    )
    return PermitTypedData(domain=domain, message=message)


class PermitTypedDataBuilder:
    """
    Builds EIP-2612 permit payloads.

    Every ``build`` call re-reads the owner's nonce and computes a fresh
    deadline, so re-signing always produces a new payload.

    Args:
        reader: ChainReader used for nonce reads (and metadata via the resolver)
        resolver: Capability resolver; one is created over ``reader`` if omitted
        clock: Returns the current unix time; ``time.time`` by default

    Example::

        builder = PermitTypedDataBuilder(Web3ChainReader())
        envelope, params, metadata = await builder.build(
            token=usdc, owner=me, spender=vault, human_amount="12.5", chain_id=11155111,
        )
        signature = await signer.sign_typed_data(envelope.to_dict())
    """

    def __init__(
        self,
        reader: ChainReader,
        resolver: Optional[TokenCapabilityResolver] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._reader = reader
        self._resolver = resolver or TokenCapabilityResolver(reader)
        self._clock = clock or time.time

    @property
    def resolver(self) -> TokenCapabilityResolver:
        return self._resolver

    async def read_nonce(self, token: str, owner: str, chain_id: int) -> int:
        """
        Read ``nonces(owner)`` on ``token``.

        Raises:
            NonceUnavailable: The read failed.
        """
        try:
            return int(await self._reader.read(chain_id, token, get_nonces_abi(), (owner,)))
        except ChainReadError as e:
            raise NonceUnavailable(f"Failed to read nonces({owner}) of {token}: {e}") from e

    async def build(
        self,
        token: str,
        owner: str,
        spender: str,
        human_amount: str,
        chain_id: int,
    ) -> Tuple[PermitTypedData, PermitParameters, TokenMetadata]:
        """
        Build the permit payload for ``human_amount`` of ``token``.

        Returns:
            ``(envelope, params, metadata)``

        Raises:
            InvalidAddress: Any address is malformed (before any network call).
            InvalidAmount: Amount unparsable or not positive (before any network call).
            AmountPrecisionExceeded: More fractional digits than the token's decimals.
            PermitUnsupported: The token exposes neither ``nonces`` nor ``DOMAIN_SEPARATOR``.
            ChainReadError: Permit support could not be determined.
            MetadataUnavailable: ``name``/``symbol``/``decimals`` could not be read.
            NonceUnavailable: ``nonces(owner)`` could not be read.
        """
        token = to_checksum("token", token)
        owner = to_checksum("owner", owner)
        spender = to_checksum("spender", spender)
        parse_amount(human_amount)

        outcome = await self._resolver.probe_permit_support(token, chain_id)
        if outcome is ProbeOutcome.UNSUPPORTED:
            raise PermitUnsupported(f"Token {token} on chain {chain_id} does not support EIP-2612 permit")
        if outcome is ProbeOutcome.INDETERMINATE:
            raise ChainReadError(
                f"Could not determine permit support of {token} on chain {chain_id}",
                contract=token,
            )

        name, symbol, decimals, nonce, (version, domain_chain_id, used_eip5267) = await asyncio.gather(
            self._resolver.read_name(token, chain_id),
            self._resolver.read_symbol(token, chain_id),
            self._resolver.read_decimals(token, chain_id),
            self.read_nonce(token, owner, chain_id),
            self._resolver.resolve_permit_domain(token, chain_id),
        )

        value = amount_to_value(amount=human_amount, decimals=decimals)
        deadline = int(self._clock()) + PERMIT_DEADLINE_SECONDS

        params = PermitParameters(
            owner=owner,
            spender=spender,
            value=value,
            deadline=deadline,
            token_address=token,
            chain_id=chain_id,
            nonce=nonce,
        )
        envelope = build_permit_typed_data(
            params,
            domain_name=name,
            domain_version=version,
            domain_chain_id=domain_chain_id,
        )
        metadata = TokenMetadata(
            token=token,
            chain_id=chain_id,
            name=name,
            symbol=symbol,
            decimals=decimals,
            supports_permit=True,
            used_eip5267=used_eip5267,
        )

        logger.debug(f"Permit domain: {envelope.domain.to_dict()}")
        logger.debug(f"Permit message: {envelope.message.to_dict()}, digest: {envelope.digest()}")
        return envelope, params, metadata

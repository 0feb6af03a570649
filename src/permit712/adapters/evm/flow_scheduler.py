"""
ScheduleFlow Typed-Data Builder

Builds the clear-signing ``ScheduleFlow`` EIP-712 payload for the Superfluid
FlowScheduler macro executed through an ``Only712MacroForwarder``.

The macro contract is the single source of the human-readable
``description`` placed in the signed message: the client never formats it
itself, because any difference would change the signed hash.

Exported
--------
compute_nonce_key
    Nonce key of the FlowScheduler macro under the forwarder.

build_schedule_flow_typed_data
    Pure helper assembling the ``ScheduleFlowTypedData`` envelope.

FlowScheduleTypedDataBuilder
    Nonce lookup, macro/forwarder encoding calls and ``prepare`` convenience.

NonceTracker
    Last-request-wins forwarder nonce fetching.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ...engine.exceptions import (
    ChainReadError,
    MacroEncodingFailed,
    NonceUnavailable,
)
from ...utils import logger
from ..bases import ChainReader
from .constants import (
    CLEAR_SIGNING_DOMAIN_NAME,
    CLEAR_SIGNING_DOMAIN_VERSION,
    FLOW_SCHEDULER_NONCE_KEY,
    SECURITY_DOMAIN,
    SECURITY_PROVIDER,
    to_checksum,
)
from .MACRO_ABI import (
    get_encode_create_flow_schedule_params_abi,
    get_forwarder_encode_params_abi,
    get_forwarder_nonce_abi,
)
from .schemas import ScheduleFlowParams, ScheduleFlowSecurity
from .standards import (
    EIP712Domain,
    ScheduleFlowAction,
    ScheduleFlowMessage,
    ScheduleFlowSecurityMessage,
    ScheduleFlowTypedData,
)


def compute_nonce_key() -> int:
    """Return the uint192 nonce key: low 192 bits of ``keccak256("FlowSchedulerMacro")``."""
    return FLOW_SCHEDULER_NONCE_KEY


def encode_lang(lang: Union[str, bytes]) -> bytes:
    """Encode a language tag (``"en"``) as the right-padded ``bytes32`` the macro expects."""
    raw = lang.encode("ascii") if isinstance(lang, str) else bytes(lang)
    if len(raw) > 32:
        raise ValueError(f"language tag longer than 32 bytes: {lang!r}")
    return raw.ljust(32, b"\x00")


def build_schedule_flow_typed_data(
    params: ScheduleFlowParams,
    security: ScheduleFlowSecurity,
    description: str,
    chain_id: int,
    verifying_contract: str,
) -> ScheduleFlowTypedData:
    """
    Assemble the ``ScheduleFlow(Action action, Security security)`` envelope.

    Args:
        params: Schedule parameters (become the ``Action`` struct)
        security: Forwarder security envelope (becomes the ``Security`` struct)
        description: Text returned by the macro for ``params``
        chain_id: Domain chainId
        verifying_contract: Forwarder address

    Returns:
        ``ScheduleFlowTypedData`` under domain ``ClearSigning`` / ``1``.
    """
    domain = EIP712Domain(
        name=CLEAR_SIGNING_DOMAIN_NAME,
        version=CLEAR_SIGNING_DOMAIN_VERSION,
        chainId=chain_id,
        verifyingContract=to_checksum("verifying_contract", verifying_contract),
    )
    action = ScheduleFlowAction(
        description=description,
        superToken=params.super_token,
        receiver=params.receiver,
        startDate=params.start_date,
        startMaxDelay=params.start_max_delay,
        flowRate=params.flow_rate,
        startAmount=params.start_amount,
        endDate=params.end_date,
        userData=params.user_data,
    )
    security_message = ScheduleFlowSecurityMessage(
        domain=security.domain,
        provider=security.provider,
        validAfter=security.valid_after,
        validBefore=security.valid_before,
        nonce=security.nonce,
    )
    return ScheduleFlowTypedData(
        domain=domain,
        message=ScheduleFlowMessage(action=action, security=security_message),
    )


@dataclass
class PreparedScheduleFlow:
    """
    Everything needed to sign and later execute one ScheduleFlow request.

    ``run_macro_params`` is the forwarder-encoded ``(actionParams, security)``
    payload passed as ``params`` to ``runMacro`` or to the relayer.
    """
    envelope: ScheduleFlowTypedData
    params: ScheduleFlowParams
    security: ScheduleFlowSecurity
    description: str
    action_params: bytes
    run_macro_params: bytes
    forwarder: str
    macro: str
    sender: str
    chain_id: int


class FlowScheduleTypedDataBuilder:
    """
    Reads forwarder/macro state and builds ScheduleFlow payloads.

    Args:
        reader: ChainReader used for the forwarder and macro calls
        security_domain: ``Security.domain`` value
        security_provider: ``Security.provider`` value

    Example::

        builder = FlowScheduleTypedDataBuilder(Web3ChainReader())
        prepared = await builder.prepare(forwarder, macro, sender, params, chain_id=11155420)
        signature = await signer.sign_typed_data(prepared.envelope.to_dict())
    """

    def __init__(
        self,
        reader: ChainReader,
        security_domain: str = SECURITY_DOMAIN,
        security_provider: str = SECURITY_PROVIDER,
    ):
        self._reader = reader
        self._security_domain = security_domain
        self._security_provider = security_provider

    async def fetch_next_nonce(self, forwarder: str, sender: str, chain_id: int) -> int:
        """
        Read ``getNonce(sender, FLOW_SCHEDULER_NONCE_KEY)`` on the forwarder.

        Raises:
            NonceUnavailable: The read failed.
        """
        forwarder = to_checksum("forwarder", forwarder)
        sender = to_checksum("sender", sender)
        try:
            nonce = await self._reader.read(
                chain_id, forwarder, get_forwarder_nonce_abi(), (sender, compute_nonce_key())
            )
        except ChainReadError as e:
            raise NonceUnavailable(f"Failed to read forwarder nonce of {sender}: {e}") from e
        return int(nonce)

    async def describe_and_encode_action(
        self,
        macro: str,
        params: ScheduleFlowParams,
        chain_id: int,
        lang: Union[str, bytes] = "en",
    ) -> Tuple[str, bytes]:
        """
        Ask the macro for its description and canonical encoding of ``params``.

        Returns:
            ``(description, action_params)``

        Raises:
            MacroEncodingFailed: The call reverted or failed.
        """
        macro = to_checksum("macro", macro)
        try:
            description, action_params, _struct_hash = await self._reader.read(
                chain_id,
                macro,
                get_encode_create_flow_schedule_params_abi(),
                (encode_lang(lang), params.to_abi_tuple()),
            )
        except ChainReadError as e:
            raise MacroEncodingFailed(f"encodeCreateFlowScheduleParams failed on {macro}: {e}") from e
        return description, bytes(action_params)

    async def encode_run_macro_params(
        self,
        forwarder: str,
        action_params: bytes,
        security: ScheduleFlowSecurity,
        chain_id: int,
    ) -> bytes:
        """
        Ask the forwarder to encode ``(action_params, security)`` for ``runMacro``.

        Raises:
            MacroEncodingFailed: The call reverted or failed.
        """
        forwarder = to_checksum("forwarder", forwarder)
        try:
            encoded = await self._reader.read(
                chain_id,
                forwarder,
                get_forwarder_encode_params_abi(),
                (action_params, security.to_abi_tuple()),
            )
        except ChainReadError as e:
            raise MacroEncodingFailed(f"encodeParams failed on {forwarder}: {e}") from e
        return bytes(encoded)

    def make_security(self, nonce: int, valid_after: int = 0, valid_before: int = 0) -> ScheduleFlowSecurity:
        return ScheduleFlowSecurity(
            domain=self._security_domain,
            provider=self._security_provider,
            valid_after=valid_after,
            valid_before=valid_before,
            nonce=nonce,
        )

    def build_typed_data(
        self,
        params: ScheduleFlowParams,
        security: ScheduleFlowSecurity,
        description: str,
        chain_id: int,
        verifying_contract: str,
    ) -> ScheduleFlowTypedData:
        return build_schedule_flow_typed_data(params, security, description, chain_id, verifying_contract)

    async def prepare(
        self,
        forwarder: str,
        macro: str,
        sender: str,
        params: ScheduleFlowParams,
        chain_id: int,
        valid_after: int = 0,
        valid_before: int = 0,
        lang: Union[str, bytes] = "en",
    ) -> PreparedScheduleFlow:
        """
        Fetch description, action params and a fresh nonce, then build the envelope.

        The macro call and the nonce read run concurrently; the forwarder
        encoding needs both and runs after them.
        """
        forwarder = to_checksum("forwarder", forwarder)
        macro = to_checksum("macro", macro)
        sender = to_checksum("sender", sender)

        (description, action_params), nonce = await asyncio.gather(
            self.describe_and_encode_action(macro, params, chain_id, lang),
            self.fetch_next_nonce(forwarder, sender, chain_id),
        )
        security = self.make_security(nonce, valid_after, valid_before)
        run_macro_params = await self.encode_run_macro_params(forwarder, action_params, security, chain_id)
        envelope = self.build_typed_data(params, security, description, chain_id, forwarder)

        logger.debug(f"ScheduleFlow description: {description!r}, nonce: {nonce}")
        logger.debug(f"ScheduleFlow digest: {envelope.digest()}")
        return PreparedScheduleFlow(
            envelope=envelope,
            params=params,
            security=security,
            description=description,
            action_params=action_params,
            run_macro_params=run_macro_params,
            forwarder=forwarder,
            macro=macro,
            sender=sender,
            chain_id=chain_id,
        )


class NonceTracker:
    """
    Keeps the forwarder nonce of the current ``(forwarder, sender, chain_id)``.

    Each ``refresh`` cancels the fetch still in flight from an earlier call.
    A superseded call returns ``None`` and never overwrites ``current``, even
    if its read completes after the newer one.
    """

    def __init__(self, builder: FlowScheduleTypedDataBuilder):
        self._builder = builder
        self._key: Optional[Tuple[int, str, str]] = None
        self._nonce: Optional[int] = None
        self._task: Optional[asyncio.Future] = None
        self._generation = 0

    @property
    def current(self) -> Optional[int]:
        return self._nonce

    async def refresh(self, forwarder: str, sender: str, chain_id: int) -> Optional[int]:
        """
        Fetch the nonce for ``(forwarder, sender, chain_id)``.

        Returns:
            The nonce, or None when a newer ``refresh`` superseded this one.

        Raises:
            NonceUnavailable: The latest fetch failed.
        """
        key = (chain_id, forwarder.lower(), sender.lower())
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if key != self._key:
            self._key = key
            self._nonce = None

        self._generation += 1
        generation = self._generation
        task = asyncio.ensure_future(self._builder.fetch_next_nonce(forwarder, sender, chain_id))
        self._task = task

        try:
            nonce = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return None
            raise
        except NonceUnavailable:
            if generation != self._generation:
                return None
            raise

        if generation != self._generation:
            logger.debug(f"Discarding superseded nonce {nonce} for {key}")
            return None
        self._nonce = nonce
        return nonce

    def invalidate(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._generation += 1
        self._key = None
        self._nonce = None

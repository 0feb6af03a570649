"""
Signing Flows

Wires builder -> signer -> codec -> dispatcher for the two supported
authorizations:

    - PermitFlow: EIP-2612 permit, executed through ``permit`` (optionally
      followed by ``transferFrom``)
    - ScheduleFlowFlow: FlowScheduler macro, executed through the forwarder's
      ``runMacro`` or a relayer

``sign()`` always rebuilds the payload, so every signature carries a fresh
nonce and deadline. ``submit()`` / ``relay()`` only reuse a stored
``SignedRequest`` and never prompt the signer again.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Hashable, List, Optional, Set

from .adapters.bases import Signer
from .adapters.evm.constants import FlowSchedulerConfig, get_flow_scheduler_config, to_checksum
from .adapters.evm.flow_scheduler import FlowScheduleTypedDataBuilder, PreparedScheduleFlow
from .adapters.evm.permits import PermitTypedDataBuilder
from .adapters.evm.schemas import PermitParameters, ScheduleFlowParams, TokenMetadata
from .adapters.evm.signatures import split_signature
from .adapters.evm.standards import TypedDataEnvelope
from .engine.dispatcher import ExecutionDispatcher, OnSubmitted
from .engine.exceptions import (
    ChainMismatchError,
    MalformedSignature,
    SignerRejected,
    SignRequestInFlight,
)
from .schemas.bases import ExecutionResult
from .utils import abbreviate_address, logger, redact_hex


@dataclass
class SignedRequest:
    """
    A signature together with everything needed to execute it.

    Attributes:
        request_id: Dispatcher key of this request
        chain_id: Chain the request was built and signed for
        signer: Address that signed
        signature: Canonical 0x-prefixed signature
        envelope: The exact payload that was signed
        digest: EIP-712 hash of ``envelope``
        permit: Permit arguments (permit requests)
        metadata: Token metadata (permit requests)
        prepared: Forwarder payload (ScheduleFlow requests)
    """
    request_id: str
    chain_id: int
    signer: str
    signature: str
    envelope: TypedDataEnvelope
    digest: str
    permit: Optional[PermitParameters] = None
    metadata: Optional[TokenMetadata] = None
    prepared: Optional[PreparedScheduleFlow] = None


class SigningSession:
    """
    Refuses a second sign request for the same logical action while the
    first one is waiting for the signer.
    """

    def __init__(self):
        self._pending: Set[Hashable] = set()

    @asynccontextmanager
    async def guard(self, key: Hashable):
        if key in self._pending:
            raise SignRequestInFlight(f"A sign request for {key!r} is already pending")
        self._pending.add(key)
        try:
            yield
        finally:
            self._pending.discard(key)


async def ensure_chain(signer: Signer, expected_chain_id: int) -> None:
    """
    Raise ``ChainMismatchError`` unless the signer is connected to ``expected_chain_id``.

    The request is never silently moved to the connected chain.
    """
    connected = await signer.get_chain_id()
    if connected != expected_chain_id:
        raise ChainMismatchError(expected_chain_id, connected)


async def sign_envelope(signer: Signer, envelope: TypedDataEnvelope, chain_id: int) -> str:
    """
    Ask ``signer`` to sign ``envelope`` and return the canonical signature.

    Raises:
        ChainMismatchError: Signer connected to another chain.
        SignerRejected: Signer refused, failed, or returned a malformed signature.
    """
    await ensure_chain(signer, chain_id)
    try:
        raw = await signer.sign_typed_data(envelope.to_dict())
    except SignerRejected:
        raise
    except Exception as e:
        raise SignerRejected(f"Signer failed: {e}") from e

    try:
        return split_signature(raw).to_hex()
    except MalformedSignature as e:
        raise SignerRejected(f"Signer returned a malformed signature: {e}") from e


def _new_request_id() -> str:
    return uuid.uuid4().hex


class PermitFlow:
    """
    EIP-2612 permit: build, sign, execute.

    Example::

        flow = PermitFlow(PermitTypedDataBuilder(reader), signer, dispatcher)
        signed = await flow.sign(token, spender, "25", chain_id=11155111)
        result = await flow.submit(signed)
    """

    def __init__(
        self,
        builder: PermitTypedDataBuilder,
        signer: Signer,
        dispatcher: ExecutionDispatcher,
        session: Optional[SigningSession] = None,
    ):
        self._builder = builder
        self._signer = signer
        self._dispatcher = dispatcher
        self._session = session or SigningSession()

    async def sign(self, token: str, spender: str, human_amount: str, chain_id: int) -> SignedRequest:
        token = to_checksum("token", token)
        spender = to_checksum("spender", spender)
        owner = await self._signer.get_address()
        key = ("permit", chain_id, token.lower(), owner.lower(), spender.lower())
        async with self._session.guard(key):
            envelope, params, metadata = await self._builder.build(
                token, owner, spender, human_amount, chain_id
            )
            signature = await sign_envelope(self._signer, envelope, chain_id)

        signed = SignedRequest(
            request_id=_new_request_id(),
            chain_id=chain_id,
            signer=params.owner,
            signature=signature,
            envelope=envelope,
            digest=envelope.digest(),
            permit=params,
            metadata=metadata,
        )
        self._dispatcher.mark_signed(signed.request_id)
        logger.info(
            f"Permit {signed.request_id} signed by {abbreviate_address(params.owner)} for {params.value} "
            f"{metadata.symbol}, signature {redact_hex(signature)}"
        )
        return signed

    async def submit(self, signed: SignedRequest, on_submitted: Optional[OnSubmitted] = None) -> ExecutionResult:
        return await self._dispatcher.execute_permit(
            signed.request_id, signed.permit, signed.signature, on_submitted
        )

    async def submit_with_transfer(
        self,
        signed: SignedRequest,
        recipient: str,
        on_submitted: Optional[OnSubmitted] = None,
    ) -> ExecutionResult:
        return await self._dispatcher.execute_permit_and_transfer(
            signed.request_id, signed.permit, signed.signature, recipient, on_submitted
        )

    async def resubmit(self, signed: SignedRequest, on_submitted: Optional[OnSubmitted] = None) -> ExecutionResult:
        """Try a failed request again with its existing signature."""
        self._dispatcher.resubmit(signed.request_id)
        return await self.submit(signed, on_submitted)


class ScheduleFlowFlow:
    """
    FlowScheduler macro: prepare, sign, execute through the forwarder or a relayer.

    Forwarder and macro addresses come from ``get_flow_scheduler_config``
    unless passed explicitly; missing configuration raises
    ``ConfigurationError`` before any network call.
    """

    def __init__(
        self,
        builder: FlowScheduleTypedDataBuilder,
        signer: Signer,
        dispatcher: ExecutionDispatcher,
        session: Optional[SigningSession] = None,
        config_loader: Callable[[int], FlowSchedulerConfig] = get_flow_scheduler_config,
    ):
        self._builder = builder
        self._signer = signer
        self._dispatcher = dispatcher
        self._session = session or SigningSession()
        self._config_loader = config_loader

    async def sign(
        self,
        params: ScheduleFlowParams,
        chain_id: int,
        valid_after: int = 0,
        valid_before: int = 0,
        forwarder: Optional[str] = None,
        macro: Optional[str] = None,
    ) -> SignedRequest:
        if forwarder is None or macro is None:
            configured_forwarder, configured_macro = self._config_loader(chain_id).require()
            forwarder = forwarder or configured_forwarder
            macro = macro or configured_macro
        forwarder = to_checksum("forwarder", forwarder)
        macro = to_checksum("macro", macro)

        sender = await self._signer.get_address()
        key = ("schedule_flow", chain_id, sender.lower(), params.to_canonical_json())
        async with self._session.guard(key):
            await ensure_chain(self._signer, chain_id)
            prepared = await self._builder.prepare(
                forwarder, macro, sender, params, chain_id, valid_after, valid_before
            )
            signature = await sign_envelope(self._signer, prepared.envelope, chain_id)

        signed = SignedRequest(
            request_id=_new_request_id(),
            chain_id=chain_id,
            signer=prepared.sender,
            signature=signature,
            envelope=prepared.envelope,
            digest=prepared.envelope.digest(),
            prepared=prepared,
        )
        self._dispatcher.mark_signed(signed.request_id)
        logger.info(
            f"ScheduleFlow {signed.request_id} signed by {abbreviate_address(prepared.sender)} "
            f"(nonce {prepared.security.nonce}), signature {redact_hex(signature)}"
        )
        return signed

    async def submit(self, signed: SignedRequest, on_submitted: Optional[OnSubmitted] = None) -> ExecutionResult:
        prepared = signed.prepared
        return await self._dispatcher.execute_macro(
            signed.request_id,
            prepared.forwarder,
            prepared.macro,
            prepared.run_macro_params,
            signed.signer,
            signed.signature,
            signed.chain_id,
            on_submitted,
        )

    async def relay(self, signed: SignedRequest) -> ExecutionResult:
        prepared = signed.prepared
        return await self._dispatcher.relay_macro(
            signed.request_id,
            prepared.macro,
            prepared.run_macro_params,
            signed.signer,
            signed.signature,
            signed.chain_id,
        )

    async def resubmit(self, signed: SignedRequest, via_relayer: bool = False) -> ExecutionResult:
        """Try a failed request again with its existing signature."""
        self._dispatcher.resubmit(signed.request_id)
        if via_relayer:
            return await self.relay(signed)
        return await self.submit(signed)


async def observe_chain_changes(signer: Signer, window: float = 3.0, poll_interval: float = 0.5) -> List[int]:
    """
    Poll the signer's chain id for ``window`` seconds and log every change.

    Diagnostic only; the returned list holds each distinct chain id in the
    order it was observed.
    """
    observed: List[int] = [await signer.get_chain_id()]
    loop = asyncio.get_running_loop()
    deadline = loop.time() + window
    while loop.time() < deadline:
        await asyncio.sleep(min(poll_interval, max(deadline - loop.time(), 0)))
        chain_id = await signer.get_chain_id()
        if chain_id != observed[-1]:
            logger.info(f"Signer switched chain {observed[-1]} -> {chain_id}")
            observed.append(chain_id)
    return observed

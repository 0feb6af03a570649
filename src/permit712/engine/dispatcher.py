"""
Execution Dispatcher

Turns a signature into a transaction, either directly through the wallet's
``Writer`` or through a relayer, and tracks a small state machine per
signed request::

    SIGNED -> SUBMITTING       -> CONFIRMED | FAILED
    SIGNED -> RELAY_SUBMITTING -> RELAY_ACCEPTED | RELAY_FAILED

Nothing is retried automatically. A request that ended in ``FAILED`` or
``RELAY_FAILED`` can be tried again with the same signature after an
explicit ``resubmit``; every other repeated execution raises
``InvalidTransition``.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..adapters.bases import NetworkRegistry, Relayer, Writer
from ..adapters.evm.ERC20_ABI import get_permit_abi, get_transfer_from_abi
from ..adapters.evm.MACRO_ABI import get_run_macro_abi
from ..adapters.evm.constants import to_checksum
from ..adapters.evm.schemas import PermitParameters
from ..adapters.evm.signatures import split_signature
from ..schemas.bases import (
    ExecutionPath,
    ExecutionResult,
    ExecutionState,
    TransactionReceipt,
)
from ..utils import logger
from .exceptions import (
    ConfigurationError,
    InvalidTransition,
    RelayRejected,
    RelayTransportError,
    SubmissionFailed,
)

OnSubmitted = Callable[[str], Union[None, Awaitable[None]]]

_TRANSITIONS: Dict[Optional[ExecutionState], frozenset] = {
    None: frozenset({ExecutionState.SIGNED}),
    ExecutionState.SIGNED: frozenset({ExecutionState.SUBMITTING, ExecutionState.RELAY_SUBMITTING}),
    ExecutionState.SUBMITTING: frozenset({ExecutionState.CONFIRMED, ExecutionState.FAILED}),
    ExecutionState.RELAY_SUBMITTING: frozenset({ExecutionState.RELAY_ACCEPTED, ExecutionState.RELAY_FAILED}),
    ExecutionState.FAILED: frozenset({ExecutionState.SIGNED}),
    ExecutionState.RELAY_FAILED: frozenset({ExecutionState.SIGNED}),
}

_Call = Tuple[str, Dict[str, Any], Sequence[Any]]


class ExecutionDispatcher:
    """
    Executes signed requests and records their state.

    Args:
        writer: Wallet write capability (direct path)
        registry: Explorer lookups; links are omitted when absent
        relayer: Relay service, e.g. ``RelayerClient``; relaying is disabled when absent

    Example::

        dispatcher = ExecutionDispatcher(writer=Web3Writer(), registry=StaticNetworkRegistry())
        result = await dispatcher.execute_permit("req-1", params, signature,
                                                 on_submitted=lambda h: print("sent", h))
        print(result.state, result.explorer_url)
    """

    def __init__(
        self,
        writer: Optional[Writer] = None,
        registry: Optional[NetworkRegistry] = None,
        relayer: Optional[Relayer] = None,
    ):
        self._writer = writer
        self._registry = registry
        self._relayer = relayer
        self._states: Dict[str, ExecutionState] = {}
        self._results: Dict[str, ExecutionResult] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, request_id: str) -> Optional[ExecutionState]:
        return self._states.get(request_id)

    def result(self, request_id: str) -> Optional[ExecutionResult]:
        return self._results.get(request_id)

    def _transition(self, request_id: str, target: ExecutionState) -> None:
        current = self._states.get(request_id)
        if target not in _TRANSITIONS.get(current, frozenset()):
            raise InvalidTransition(current, target)
        logger.debug(f"Request {request_id}: {current} -> {target}")
        self._states[request_id] = target

    def mark_signed(self, request_id: str) -> None:
        """Register a freshly signed request. Unknown ids are registered implicitly on execution."""
        self._transition(request_id, ExecutionState.SIGNED)

    def resubmit(self, request_id: str) -> None:
        """
        Allow one more execution attempt of a failed request with its existing signature.

        Raises:
            InvalidTransition: The request is not in ``FAILED`` / ``RELAY_FAILED``.
        """
        self._transition(request_id, ExecutionState.SIGNED)
        self._results.pop(request_id, None)

    def _begin(self, request_id: str, target: ExecutionState) -> None:
        if request_id not in self._states:
            self.mark_signed(request_id)
        self._transition(request_id, target)

    def _finish(
        self,
        request_id: str,
        path: ExecutionPath,
        state: ExecutionState,
        chain_id: int,
        tx_hash: Optional[str] = None,
        **extra: Any,
    ) -> ExecutionResult:
        self._transition(request_id, state)
        result = ExecutionResult(
            request_id=request_id,
            path=path,
            state=state,
            tx_hash=tx_hash,
            explorer_url=self.explorer_url(chain_id, tx_hash) if tx_hash else None,
            **extra,
        )
        self._results[request_id] = result
        return result

    # ------------------------------------------------------------------
    # Explorer
    # ------------------------------------------------------------------

    def explorer_url(self, chain_id: int, tx_hash: str) -> Optional[str]:
        """Human-facing link for ``tx_hash``; None when no explorer is known."""
        if self._registry is None:
            return None
        base = self._registry.explorer_url_for(chain_id)
        if not base:
            return None
        return f"{base.rstrip('/')}/tx/{tx_hash}"

    # ------------------------------------------------------------------
    # Direct path
    # ------------------------------------------------------------------

    def _require_writer(self) -> Writer:
        if self._writer is None:
            raise ConfigurationError("No wallet writer configured for direct execution")
        return self._writer

    @staticmethod
    def _permit_call(params: PermitParameters, signature: str) -> _Call:
        parts = split_signature(signature)
        args = [params.owner, params.spender, params.value, params.deadline, parts.v, parts.r, parts.s]
        return params.token_address, get_permit_abi(), args

    async def execute_permit(
        self,
        request_id: str,
        params: PermitParameters,
        signature: str,
        on_submitted: Optional[OnSubmitted] = None,
    ) -> ExecutionResult:
        """
        Call ``permit(owner, spender, value, deadline, v, r, s)`` on the token.

        Raises:
            MalformedSignature: Before any state change.
            SubmissionFailed: ``submitted`` tells a rejected submission from a revert.
            InvalidTransition: The request already reached a state that forbids execution.
        """
        self._require_writer()
        call = self._permit_call(params, signature)
        return await self._run_direct(request_id, params.chain_id, [call], on_submitted)

    async def execute_permit_and_transfer(
        self,
        request_id: str,
        params: PermitParameters,
        signature: str,
        recipient: str,
        on_submitted: Optional[OnSubmitted] = None,
    ) -> ExecutionResult:
        """
        Submit the permit, wait for it, then ``transferFrom(owner, recipient, value)``.

        The writer must send from ``params.spender``. ``on_submitted`` fires
        once per transaction. The result carries the transfer hash.
        """
        self._require_writer()
        recipient = to_checksum("recipient", recipient)
        calls = [
            self._permit_call(params, signature),
            (params.token_address, get_transfer_from_abi(), [params.owner, recipient, params.value]),
        ]
        return await self._run_direct(request_id, params.chain_id, calls, on_submitted)

    async def execute_macro(
        self,
        request_id: str,
        forwarder: str,
        macro: str,
        params: bytes,
        signer: str,
        signature: str,
        chain_id: int,
        on_submitted: Optional[OnSubmitted] = None,
    ) -> ExecutionResult:
        """Call ``runMacro(macro, params, signer, signature)`` on the forwarder."""
        self._require_writer()
        packed = split_signature(signature).to_packed_bytes()
        call = (
            to_checksum("forwarder", forwarder),
            get_run_macro_abi(),
            [to_checksum("macro", macro), bytes(params), to_checksum("signer", signer), packed],
        )
        return await self._run_direct(request_id, chain_id, [call], on_submitted)

    async def _run_direct(
        self,
        request_id: str,
        chain_id: int,
        calls: List[_Call],
        on_submitted: Optional[OnSubmitted],
    ) -> ExecutionResult:
        self._begin(request_id, ExecutionState.SUBMITTING)

        receipt: Optional[TransactionReceipt] = None
        sent: List[str] = []
        try:
            for contract, abi, args in calls:
                receipt = await self._submit_and_confirm(chain_id, contract, abi, args, on_submitted, sent)
        except SubmissionFailed as e:
            logger.error(f"Request {request_id} failed (submitted={e.submitted}): {e}")
            self._finish(
                request_id, ExecutionPath.DIRECT, ExecutionState.FAILED, chain_id,
                tx_hash=e.tx_hash, error=str(e),
            )
            raise
        except (Exception, asyncio.CancelledError) as e:
            tx_hash = sent[-1] if sent else None
            failure = SubmissionFailed(
                f"Request {request_id} interrupted: {e!r}", submitted=bool(sent), tx_hash=tx_hash
            )
            logger.error(f"Request {request_id} failed (submitted={failure.submitted}): {e!r}")
            self._finish(
                request_id, ExecutionPath.DIRECT, ExecutionState.FAILED, chain_id,
                tx_hash=tx_hash, error=str(failure),
            )
            if isinstance(e, asyncio.CancelledError):
                raise
            raise failure from e

        return self._finish(
            request_id, ExecutionPath.DIRECT, ExecutionState.CONFIRMED, chain_id,
            tx_hash=receipt.tx_hash, block_number=receipt.block_number,
        )

    async def _submit_and_confirm(
        self,
        chain_id: int,
        contract: str,
        abi: Dict[str, Any],
        args: Sequence[Any],
        on_submitted: Optional[OnSubmitted],
        sent: List[str],
    ) -> TransactionReceipt:
        writer = self._require_writer()
        name = abi["name"]
        try:
            tx_hash = await writer.write(chain_id, contract, abi, args)
        except SubmissionFailed:
            raise
        except Exception as e:
            raise SubmissionFailed(f"{name}() was not submitted: {e}", submitted=False) from e

        sent.append(tx_hash)
        logger.info(f"{name}() submitted: {tx_hash}")
        await self._notify(on_submitted, tx_hash)

        try:
            receipt = await writer.wait_for_receipt(chain_id, tx_hash)
        except SubmissionFailed:
            raise
        except Exception as e:
            raise SubmissionFailed(
                f"Waiting for {name}() receipt failed: {e}", submitted=True, tx_hash=tx_hash
            ) from e

        if not receipt.is_success():
            raise SubmissionFailed(f"{name}() reverted", submitted=True, tx_hash=tx_hash)
        return receipt

    @staticmethod
    async def _notify(on_submitted: Optional[OnSubmitted], tx_hash: str) -> None:
        if on_submitted is None:
            return
        try:
            outcome = on_submitted(tx_hash)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # observer errors never change the execution outcome
            logger.exception(f"on_submitted callback failed for {tx_hash}")

    # ------------------------------------------------------------------
    # Relay path
    # ------------------------------------------------------------------

    async def relay_macro(
        self,
        request_id: str,
        macro: str,
        params: bytes,
        signer: str,
        signature: str,
        chain_id: int,
    ) -> ExecutionResult:
        """
        POST ``{macro, params, signer, signature}`` to the relayer.

        ``RELAY_ACCEPTED`` means the relayer returned a transaction hash; the
        transaction is not yet confirmed.

        Raises:
            ConfigurationError: No relayer configured.
            RelayTransportError: Relayer unreachable, non-2xx, or failing unexpectedly.
            RelayRejected: Relayer reported ``status: "failed"``.
        """
        if self._relayer is None:
            raise ConfigurationError("No relayer endpoint configured")
        canonical_signature = split_signature(signature).to_hex()
        macro = to_checksum("macro", macro)
        signer = to_checksum("signer", signer)

        self._begin(request_id, ExecutionState.RELAY_SUBMITTING)
        try:
            response = await self._relayer.relay(macro, params, signer, canonical_signature)
        except RelayRejected as e:
            self._finish(
                request_id, ExecutionPath.RELAYER, ExecutionState.RELAY_FAILED, chain_id,
                relay_status="failed", error=str(e),
            )
            raise
        except RelayTransportError as e:
            self._finish(
                request_id, ExecutionPath.RELAYER, ExecutionState.RELAY_FAILED, chain_id,
                error=str(e),
            )
            raise
        except (Exception, asyncio.CancelledError) as e:
            failure = RelayTransportError(f"Relay of {request_id} interrupted: {e!r}")
            logger.error(f"Relay of {request_id} failed: {e!r}")
            self._finish(
                request_id, ExecutionPath.RELAYER, ExecutionState.RELAY_FAILED, chain_id,
                error=str(failure),
            )
            if isinstance(e, asyncio.CancelledError):
                raise
            raise failure from e

        return self._finish(
            request_id, ExecutionPath.RELAYER, ExecutionState.RELAY_ACCEPTED, chain_id,
            tx_hash=response.tx_hash, relay_status=response.status or "accepted",
        )

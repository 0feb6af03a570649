"""
Execution Dispatcher Test Suite

Tests for ExecutionDispatcher:
- Direct path: permit, permit + transferFrom, runMacro
- Failure classification (never submitted vs. reverted)
- State machine and explicit resubmission
- Relay path outcomes
- Explorer links and submission callbacks

Usage:
    pytest tests/test_dispatcher.py -v
"""

import asyncio

import httpx
import pytest

from permit712.adapters.bases import Relayer
from permit712.adapters.evm.constants import PERMIT_DEADLINE_SECONDS
from permit712.adapters.evm.registry import StaticNetworkRegistry
from permit712.adapters.evm.schemas import PermitParameters
from permit712.adapters.evm.signatures import split_signature
from permit712.clients.relayer import RelayerClient
from permit712.engine.dispatcher import ExecutionDispatcher
from permit712.engine.exceptions import (
    ConfigurationError,
    InvalidTransition,
    MalformedSignature,
    RelayRejected,
    RelayTransportError,
    SubmissionFailed,
)
from permit712.schemas.bases import ExecutionPath, ExecutionState
from permit712.schemas.https import RelayResponse

from mocks import (
    MOCK_CHAIN_ID_SEPOLIA,
    MOCK_CHAIN_ID_UNKNOWN,
    MOCK_FORWARDER_ADDRESS,
    MOCK_MACRO_ADDRESS,
    MOCK_NOW,
    MOCK_OWNER_ADDRESS,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_RUN_MACRO_PARAMS,
    MOCK_SIGNATURE,
    MOCK_SPENDER_ADDRESS,
    MOCK_TOKEN_ADDRESS,
    FakeWriter,
    failing_writer_never_submitted,
    recorder,
)

MOCK_RELAY_TX = "0x" + "ee" * 32


@pytest.fixture
def permit_params():
    return PermitParameters(
        owner=MOCK_OWNER_ADDRESS,
        spender=MOCK_SPENDER_ADDRESS,
        value=1_000_000,
        deadline=MOCK_NOW + PERMIT_DEADLINE_SECONDS,
        token_address=MOCK_TOKEN_ADDRESS,
        chain_id=MOCK_CHAIN_ID_SEPOLIA,
        nonce=0,
    )


@pytest.fixture
def writer():
    return FakeWriter()


@pytest.fixture
def dispatcher(writer):
    return ExecutionDispatcher(writer=writer, registry=StaticNetworkRegistry())


def _relayer(handler) -> RelayerClient:
    return RelayerClient(base_url="https://relay.test", transport=httpx.MockTransport(handler))


class _ScriptedRelayer(Relayer):
    """Relayer raising the scripted errors in order, then accepting."""

    def __init__(self, *errors: BaseException):
        self.errors = list(errors)

    async def relay(self, macro, params, signer, signature) -> RelayResponse:
        if self.errors:
            raise self.errors.pop(0)
        return RelayResponse.model_validate({"txHash": MOCK_RELAY_TX})


class _StalledRelayer(Relayer):
    async def relay(self, macro, params, signer, signature) -> RelayResponse:
        await asyncio.Event().wait()


class _StalledReceiptWriter(FakeWriter):
    """Writer whose first receipt never arrives."""

    def __init__(self):
        super().__init__()
        self.stall = True

    async def wait_for_receipt(self, chain_id, tx_hash):
        if self.stall:
            await asyncio.Event().wait()
        return await super().wait_for_receipt(chain_id, tx_hash)


class TestDirectPermit:
    """Tests for permit submission."""

    @pytest.mark.asyncio
    async def test_execute_permit(self, dispatcher, writer, permit_params):
        seen, on_submitted = recorder()

        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE, on_submitted)

        parts = split_signature(MOCK_SIGNATURE)
        (chain_id, contract, name, args), = writer.writes
        assert (chain_id, contract, name) == (MOCK_CHAIN_ID_SEPOLIA, MOCK_TOKEN_ADDRESS, "permit")
        assert args == [
            MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1_000_000,
            MOCK_NOW + PERMIT_DEADLINE_SECONDS, 27, parts.r, parts.s,
        ]
        assert result.state is ExecutionState.CONFIRMED
        assert result.path is ExecutionPath.DIRECT
        assert result.is_success()
        assert seen == [result.tx_hash]
        assert result.explorer_url == f"https://sepolia.etherscan.io/tx/{result.tx_hash}"
        assert dispatcher.state("req-1") is ExecutionState.CONFIRMED
        assert dispatcher.result("req-1") == result

    @pytest.mark.asyncio
    async def test_permit_and_transfer(self, dispatcher, writer, permit_params):
        seen, on_submitted = recorder()

        result = await dispatcher.execute_permit_and_transfer(
            "req-1", permit_params, MOCK_SIGNATURE, MOCK_RECIPIENT_ADDRESS.lower(), on_submitted
        )

        assert [write[2] for write in writer.writes] == ["permit", "transferFrom"]
        assert writer.writes[1][3] == [MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 1_000_000]
        assert len(seen) == 2
        assert result.tx_hash == seen[-1]

    @pytest.mark.asyncio
    async def test_malformed_signature_before_state_change(self, dispatcher, writer, permit_params):
        with pytest.raises(MalformedSignature):
            await dispatcher.execute_permit("req-1", permit_params, "0x1234")

        assert writer.writes == []
        assert dispatcher.state("req-1") is None

    @pytest.mark.asyncio
    async def test_never_submitted(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=failing_writer_never_submitted())

        with pytest.raises(SubmissionFailed) as exc_info:
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        assert exc_info.value.submitted is False
        assert exc_info.value.tx_hash is None
        assert dispatcher.state("req-1") is ExecutionState.FAILED

    @pytest.mark.asyncio
    async def test_provider_error_is_never_submitted(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=FakeWriter(write_error=RuntimeError("nonce too low")))

        with pytest.raises(SubmissionFailed) as exc_info:
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        assert exc_info.value.submitted is False

    @pytest.mark.asyncio
    async def test_reverted(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=FakeWriter(receipt_status=0))

        with pytest.raises(SubmissionFailed) as exc_info:
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        assert exc_info.value.submitted is True
        assert exc_info.value.tx_hash is not None
        result = dispatcher.result("req-1")
        assert result.state is ExecutionState.FAILED
        assert result.tx_hash == exc_info.value.tx_hash
        assert result.error

    @pytest.mark.asyncio
    async def test_receipt_timeout_counts_as_submitted(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=FakeWriter(receipt_error=TimeoutError("no receipt")))

        with pytest.raises(SubmissionFailed) as exc_info:
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        assert exc_info.value.submitted is True

    @pytest.mark.asyncio
    async def test_no_writer(self, permit_params):
        with pytest.raises(ConfigurationError):
            await ExecutionDispatcher().execute_permit("req-1", permit_params, MOCK_SIGNATURE)

    @pytest.mark.asyncio
    async def test_callback_error_does_not_fail_execution(self, dispatcher, permit_params):
        def explode(tx_hash):
            raise RuntimeError("ui gone")

        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE, explode)

        assert result.state is ExecutionState.CONFIRMED

    @pytest.mark.asyncio
    async def test_async_callback(self, dispatcher, permit_params):
        seen = []

        async def on_submitted(tx_hash):
            seen.append(tx_hash)

        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE, on_submitted)

        assert seen == [result.tx_hash]


class TestDirectMacro:
    @pytest.mark.asyncio
    async def test_execute_macro(self, dispatcher, writer):
        result = await dispatcher.execute_macro(
            "req-1", MOCK_FORWARDER_ADDRESS, MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS,
            MOCK_OWNER_ADDRESS, MOCK_SIGNATURE[2:], MOCK_CHAIN_ID_SEPOLIA,
        )

        (_, contract, name, args), = writer.writes
        assert (contract, name) == (MOCK_FORWARDER_ADDRESS, "runMacro")
        assert args == [
            MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS, bytes.fromhex(MOCK_SIGNATURE[2:]),
        ]
        assert result.state is ExecutionState.CONFIRMED


class TestStateMachine:
    """Tests for transitions and resubmission."""

    @pytest.mark.asyncio
    async def test_confirmed_request_cannot_run_again(self, dispatcher, permit_params):
        await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        with pytest.raises(InvalidTransition):
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

    @pytest.mark.asyncio
    async def test_failed_request_needs_explicit_resubmit(self, permit_params):
        writer = FakeWriter(write_error=SubmissionFailed("rejected", submitted=False))
        dispatcher = ExecutionDispatcher(writer=writer)
        with pytest.raises(SubmissionFailed):
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        with pytest.raises(InvalidTransition):
            await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        writer.write_error = None
        dispatcher.resubmit("req-1")
        assert dispatcher.state("req-1") is ExecutionState.SIGNED
        assert dispatcher.result("req-1") is None

        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)
        assert result.state is ExecutionState.CONFIRMED
        assert len(writer.writes) == 1

    def test_resubmit_requires_failure(self, dispatcher):
        dispatcher.mark_signed("req-1")

        with pytest.raises(InvalidTransition) as exc_info:
            dispatcher.resubmit("req-1")

        assert exc_info.value.current_state is ExecutionState.SIGNED

    def test_mark_signed_twice(self, dispatcher):
        dispatcher.mark_signed("req-1")

        with pytest.raises(InvalidTransition):
            dispatcher.mark_signed("req-1")

    def test_terminal_states(self):
        assert ExecutionState.CONFIRMED.is_terminal()
        assert ExecutionState.RELAY_FAILED.is_terminal()
        assert not ExecutionState.SUBMITTING.is_terminal()


class TestExplorer:
    def test_known_chain(self, dispatcher):
        assert dispatcher.explorer_url(MOCK_CHAIN_ID_SEPOLIA, "0xabc") == "https://sepolia.etherscan.io/tx/0xabc"

    def test_unknown_chain(self, dispatcher):
        assert dispatcher.explorer_url(MOCK_CHAIN_ID_UNKNOWN, "0xabc") is None

    def test_no_registry(self):
        assert ExecutionDispatcher().explorer_url(MOCK_CHAIN_ID_SEPOLIA, "0xabc") is None

    @pytest.mark.asyncio
    async def test_result_without_explorer(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=FakeWriter())

        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)

        assert result.tx_hash is not None
        assert result.explorer_url is None


class TestRelay:
    """Tests for relayer execution."""

    @pytest.mark.asyncio
    async def test_accepted(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.read())
            return httpx.Response(200, json={"txHash": MOCK_RELAY_TX})

        async with _relayer(handler) as relayer:
            dispatcher = ExecutionDispatcher(relayer=relayer, registry=StaticNetworkRegistry())
            result = await dispatcher.relay_macro(
                "req-1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                MOCK_SIGNATURE.upper().replace("0X", "0x"), MOCK_CHAIN_ID_SEPOLIA,
            )

        assert result.state is ExecutionState.RELAY_ACCEPTED
        assert result.path is ExecutionPath.RELAYER
        assert result.tx_hash == MOCK_RELAY_TX
        assert result.relay_status == "accepted"
        assert result.explorer_url == f"https://sepolia.etherscan.io/tx/{MOCK_RELAY_TX}"
        assert MOCK_SIGNATURE.encode() in bodies[0]

    @pytest.mark.asyncio
    async def test_rejected(self):
        """A 200 with status "failed" is a rejection carrying the relayer's message."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "failed", "error": "reverted"})

        async with _relayer(handler) as relayer:
            dispatcher = ExecutionDispatcher(relayer=relayer)
            with pytest.raises(RelayRejected) as exc_info:
                await dispatcher.relay_macro(
                    "req-1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                    MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
                )

        assert str(exc_info.value) == "reverted"
        assert not isinstance(exc_info.value, RelayTransportError)
        result = dispatcher.result("req-1")
        assert result.state is ExecutionState.RELAY_FAILED
        assert result.relay_status == "failed"

    @pytest.mark.asyncio
    async def test_transport_error_then_resubmit(self):
        responses = [
            httpx.Response(502, json={"error": "bad gateway"}),
            httpx.Response(200, json={"txHash": MOCK_RELAY_TX}),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with _relayer(handler) as relayer:
            dispatcher = ExecutionDispatcher(relayer=relayer)
            with pytest.raises(RelayTransportError) as exc_info:
                await dispatcher.relay_macro(
                    "req-1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                    MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
                )
            assert exc_info.value.status_code == 502
            assert dispatcher.state("req-1") is ExecutionState.RELAY_FAILED

            dispatcher.resubmit("req-1")
            result = await dispatcher.relay_macro(
                "req-1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
            )

        assert result.state is ExecutionState.RELAY_ACCEPTED

    @pytest.mark.asyncio
    async def test_no_relayer(self):
        with pytest.raises(ConfigurationError):
            await ExecutionDispatcher().relay_macro(
                "req-1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
            )


class TestInterruptedExecution:
    """Unexpected errors and cancellation still end in a failed, resubmittable state."""

    @pytest.mark.asyncio
    async def test_unexpected_relayer_error(self):
        dispatcher = ExecutionDispatcher(relayer=_ScriptedRelayer(RuntimeError("boom")))

        with pytest.raises(RelayTransportError) as exc_info:
            await dispatcher.relay_macro(
                "r1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
            )

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert dispatcher.state("r1") is ExecutionState.RELAY_FAILED

        dispatcher.resubmit("r1")
        result = await dispatcher.relay_macro(
            "r1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
            MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
        )
        assert result.state is ExecutionState.RELAY_ACCEPTED

    @pytest.mark.asyncio
    async def test_cancelled_relay(self):
        dispatcher = ExecutionDispatcher(relayer=_StalledRelayer())

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                dispatcher.relay_macro(
                    "r1", MOCK_MACRO_ADDRESS, MOCK_RUN_MACRO_PARAMS, MOCK_OWNER_ADDRESS,
                    MOCK_SIGNATURE, MOCK_CHAIN_ID_SEPOLIA,
                ),
                timeout=0.05,
            )

        assert dispatcher.state("r1") is ExecutionState.RELAY_FAILED
        dispatcher.resubmit("r1")
        assert dispatcher.state("r1") is ExecutionState.SIGNED

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting_for_receipt(self, permit_params):
        writer = _StalledReceiptWriter()
        dispatcher = ExecutionDispatcher(writer=writer)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE), timeout=0.05
            )

        result = dispatcher.result("req-1")
        assert result.state is ExecutionState.FAILED
        assert result.tx_hash == "0x" + format(1, "064x")

        writer.stall = False
        dispatcher.resubmit("req-1")
        result = await dispatcher.execute_permit("req-1", permit_params, MOCK_SIGNATURE)
        assert result.state is ExecutionState.CONFIRMED

    @pytest.mark.asyncio
    async def test_cancelled_in_callback_after_submission(self, permit_params):
        dispatcher = ExecutionDispatcher(writer=FakeWriter())

        async def cancelling_callback(tx_hash):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await dispatcher.execute_permit(
                "req-1", permit_params, MOCK_SIGNATURE, on_submitted=cancelling_callback
            )

        result = dispatcher.result("req-1")
        assert result.state is ExecutionState.FAILED
        assert result.tx_hash is not None

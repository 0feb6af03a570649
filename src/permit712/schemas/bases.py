"""
Base Schema Models for permit712

This module defines the base classes and enumerations that the other schema
models inherit from. It provides the foundation for validation and
deterministic serialization across the package.

Core Classes:
    - CanonicalModel: Pydantic base model with canonical JSON serialization
    - ExecutionState: Lifecycle states of a signed request
    - ExecutionPath: Direct wallet submission vs. relayer submission
    - ExecutionResult: Outcome reported for each execution attempt

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    ``to_canonical_json`` produces sorted keys and no extra whitespace so
    that two equal models always serialize to the same string. Used to
    compare typed-data inputs and to log request payloads deterministically.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        model.to_canonical_json()  # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        ``model_dump(mode="json")`` converts enums, bytes and nested models to
        plain JSON types; ``json.dumps`` with sorted keys and compact
        separators makes the output deterministic.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json")
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump()


class ExecutionState(str, Enum):
    """
    Lifecycle states of a signed request.

    Direct path:  SIGNED -> SUBMITTING -> CONFIRMED | FAILED
    Relayer path: SIGNED -> RELAY_SUBMITTING -> RELAY_ACCEPTED | RELAY_FAILED

    Attributes:
        SIGNED: Signature obtained, nothing submitted yet
        SUBMITTING: Transaction handed to the wallet, awaiting inclusion
        CONFIRMED: Transaction mined with status 1
        FAILED: Submission failed or transaction reverted
        RELAY_SUBMITTING: Payload POSTed to the relayer
        RELAY_ACCEPTED: Relayer returned a transaction hash (not yet confirmed)
        RELAY_FAILED: Relayer unreachable, non-2xx, or reported failure
    """
    SIGNED = "signed"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    RELAY_SUBMITTING = "relay_submitting"
    RELAY_ACCEPTED = "relay_accepted"
    RELAY_FAILED = "relay_failed"

    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    ExecutionState.CONFIRMED,
    ExecutionState.FAILED,
    ExecutionState.RELAY_ACCEPTED,
    ExecutionState.RELAY_FAILED,
})


class ExecutionPath(str, Enum):
    """How a signed request is turned into a transaction."""
    DIRECT = "direct"
    RELAYER = "relayer"


class TransactionReceipt(CanonicalModel):
    """
    Minimal receipt returned by ``Writer.wait_for_receipt``.

    Attributes:
        tx_hash: Transaction hash (0x-prefixed)
        status: 1 for success, 0 for revert
        block_number: Block containing the transaction
        gas_used: Gas consumed by the transaction
    """

    tx_hash: str = Field(..., description="Transaction hash (0x-prefixed)")
    status: int = Field(..., ge=0, le=1, description="1 = success, 0 = reverted")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing transaction")
    gas_used: Optional[int] = Field(None, ge=0, description="Actual gas consumed by transaction")

    def is_success(self) -> bool:
        return self.status == 1


class ExecutionResult(CanonicalModel):
    """
    Outcome of one execution attempt.

    Exactly one of ``tx_hash`` (direct path, or relayer-provided hash) and
    ``relay_status`` is the primary signal; ``error`` is set for failed
    attempts.

    Attributes:
        request_id: Identifier of the signed request
        path: Direct or relayer execution
        state: Final state reached by this attempt
        tx_hash: Transaction hash (0x-prefixed) when known
        relay_status: Raw relayer status string when the relayer reported one
        error: Error message when the attempt failed
        explorer_url: Block explorer link for ``tx_hash`` when a known explorer exists
        block_number: Block containing the transaction (direct path, confirmed)
        created_at: Timestamp when the result was recorded
    """

    request_id: str = Field(..., description="Identifier of the signed request")
    path: ExecutionPath = Field(..., description="Execution path taken")
    state: ExecutionState = Field(..., description="State reached by this attempt")
    tx_hash: Optional[str] = Field(None, description="Transaction hash (0x-prefixed)")
    relay_status: Optional[str] = Field(None, description="Relayer-reported status")
    error: Optional[str] = Field(None, description="Error message for failed attempts")
    explorer_url: Optional[str] = Field(None, description="Explorer link for tx_hash")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing the transaction")
    created_at: datetime = Field(default_factory=datetime.now, description="Result recording timestamp")

    def is_success(self) -> bool:
        """
        Check whether the attempt reached a successful state.

        ``RELAY_ACCEPTED`` counts as success for the relay call itself even
        though the transaction is not yet confirmed on-chain.
        """
        return self.state in (ExecutionState.CONFIRMED, ExecutionState.RELAY_ACCEPTED)

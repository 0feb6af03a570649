"""
Relayer HTTP Schema Models

Pydantic models for the relayer exchange:

1. Client POSTs ``RelayRequest`` ``{macro, params, signer, signature}`` to ``/relay``
2. Relayer answers ``{txHash}`` on acceptance, ``{status: "failed", error}``
   when it rejected the request, or a non-2xx status with ``{error}``

Field names on the wire are camelCase; Python attributes are snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RelayRequest(BaseModel):
    """Body of ``POST /relay``. All values are 0x-prefixed hex strings.

    Attributes:
        macro: Macro contract address.
        params: Forwarder-encoded ``(actionParams, security)`` payload.
        signer: Address that produced ``signature``.
        signature: 65-byte ``r || s || v`` signature.
    """
    model_config = ConfigDict(populate_by_name=True)

    macro: str
    params: str
    signer: str
    signature: str


class RelayResponse(BaseModel):
    """Relayer answer to ``POST /relay``.

    Attributes:
        tx_hash: Transaction hash of the relayed call (accepted requests).
        status: ``"failed"`` when the relayer rejected the request.
        error: Human-readable failure reason.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    status: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)

    def is_failed(self) -> bool:
        return self.status == "failed"

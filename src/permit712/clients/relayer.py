"""
Relayer HTTP Client

An ``httpx.AsyncClient`` that submits pre-signed macro calls to a relayer,
which pays gas and broadcasts the forwarder transaction on the user's behalf.

Transport failures and relayer-side rejections are reported as different
exceptions because they call for different recovery: a transport failure
can be retried with the same signature, a rejection usually needs a new one.
"""

from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..adapters.bases import Relayer
from ..adapters.evm.constants import get_relayer_url_from_env
from ..engine.exceptions import ConfigurationError, RelayRejected, RelayTransportError
from ..schemas.https import RelayRequest, RelayResponse
from ..utils import logger, redact_hex


class RelayerClient(httpx.AsyncClient, Relayer):
    """
    Extended httpx.AsyncClient speaking the relayer protocol.

    Fully compatible with httpx.AsyncClient and usable as an async context
    manager. ``base_url`` defaults to ``PERMIT712_RELAYER_URL``.

    Usage:
        ```python
        async with RelayerClient(base_url="https://relay.example.org") as relayer:
            accepted = await relayer.relay(macro, params, signer, signature)
            print(accepted.tx_hash)
        ```
    """

    def __init__(self, relay_path: str = "/relay", **kwargs):
        """
        Initialize the client.

        Args:
            relay_path: Path of the relay endpoint, appended to ``base_url``
            **kwargs: All standard httpx.AsyncClient arguments (timeout, transport, ...)

        Raises:
            ConfigurationError: No ``base_url`` given and none configured.
        """
        if not kwargs.get("base_url"):
            base_url = get_relayer_url_from_env()
            if not base_url:
                raise ConfigurationError("Relayer endpoint is not configured (PERMIT712_RELAYER_URL)")
            kwargs["base_url"] = base_url
        kwargs.setdefault("timeout", 30.0)
        super().__init__(**kwargs)
        self._relay_path = relay_path

    async def relay(self, macro: str, params: bytes, signer: str, signature: str) -> RelayResponse:
        """
        POST a signed macro call to the relayer.

        Args:
            macro: Macro contract address
            params: Forwarder-encoded payload (``runMacro`` ``params``)
            signer: Address that signed
            signature: Canonical 0x-prefixed signature

        Returns:
            RelayResponse carrying ``tx_hash``

        Raises:
            RelayTransportError: Network failure, non-2xx status, or unreadable body.
            RelayRejected: 2xx with ``status: "failed"``.
        """
        request = RelayRequest(
            macro=macro,
            params="0x" + bytes(params).hex(),
            signer=signer,
            signature=signature,
        )
        logger.debug(f"Relaying macro {macro} for {signer}, signature {redact_hex(signature)}")

        try:
            response = await self.post(self._relay_path, json=request.model_dump(mode="json"))
        except httpx.HTTPError as e:
            raise RelayTransportError(f"Relayer unreachable: {e}") from e

        if not response.is_success:
            raise RelayTransportError(
                f"Relayer responded {response.status_code}: {self._error_text(response)}",
                status_code=response.status_code,
            )

        try:
            payload = RelayResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise RelayTransportError(
                f"Relayer returned an unreadable body: {e}", status_code=response.status_code
            ) from e

        if payload.is_failed():
            raise RelayRejected(payload.error or "relay failed")
        if not payload.tx_hash:
            raise RelayTransportError(
                "Relayer response carries neither txHash nor failure status",
                status_code=response.status_code,
            )

        logger.info(f"Relayer accepted macro call: {payload.tx_hash}")
        return payload

    @staticmethod
    def _error_text(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return response.text or None

"""
Web3-backed Collaborators

Concrete ``ChainReader`` / ``Writer`` / ``Signer`` implementations over
``AsyncWeb3``. One provider is created lazily per chain id; the chain is
always an explicit argument, there is no "current chain".

Core Classes:
    - Web3ChainReader: ``eth_call`` reads with revert/decode error mapping
    - Web3Writer: ``eth_sendTransaction`` through a node-managed account
    - Web3Signer: ``eth_signTypedData_v4`` through a node-managed account

None of these classes ever handles key material.
"""

from typing import Any, Dict, Optional, Sequence

from web3 import AsyncWeb3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    Web3Exception,
)

from ...engine.exceptions import (
    ChainReadError,
    ConfigurationError,
    ContractReverted,
    OutputDecodeError,
    SignerRejected,
    SubmissionFailed,
)
from ...schemas.bases import TransactionReceipt
from ...utils import logger
from ..bases import ChainReader, Signer, Writer
from .constants import get_rpc_key_from_env, get_rpc_url
from .standards import typed_data_to_json


class Web3Provider:
    """
    Lazily creates one ``AsyncWeb3`` instance per chain id.

    RPC URL resolution: ``rpc_urls[chain_id]`` if given, otherwise
    ``get_rpc_url(chain_id, rpc_key)``.
    """

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        rpc_key: Optional[str] = None,
        request_timeout: int = 30,
    ):
        self._rpc_urls = dict(rpc_urls or {})
        self._rpc_key = rpc_key if rpc_key is not None else get_rpc_key_from_env()
        self._request_timeout = request_timeout
        self._instances: Dict[int, AsyncWeb3] = {}

    def _get_web3_instance(self, chain_id: int) -> AsyncWeb3:
        """
        Return the ``AsyncWeb3`` instance for ``chain_id``.

        Raises:
            ConfigurationError: No RPC endpoint is known for the chain.
        """
        w3 = self._instances.get(chain_id)
        if w3 is not None:
            return w3

        rpc_url = self._rpc_urls.get(chain_id) or get_rpc_url(chain_id, self._rpc_key)
        if not rpc_url:
            raise ConfigurationError(f"No RPC endpoint configured for chain_id {chain_id}")

        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": self._request_timeout}
        ))
        self._instances[chain_id] = w3
        return w3


class Web3ChainReader(Web3Provider, ChainReader):
    """
    ``ChainReader`` over ``eth_call``.

    Error mapping:
        - ``ContractLogicError`` (revert, custom error, panic) -> ``ContractReverted``
        - ``BadFunctionCallOutput`` (empty or undecodable data) -> ``OutputDecodeError``
        - Any other ``Web3Exception`` / transport error -> ``ChainReadError``

    Functions declared without outputs are executed as a raw ``eth_call``; an
    empty result from an address without code counts as a revert.
    """

    async def read(
        self,
        chain_id: int,
        contract: str,
        function_abi: Dict[str, Any],
        args: Sequence[Any] = (),
    ) -> Any:
        w3 = self._get_web3_instance(chain_id)
        address = AsyncWeb3.to_checksum_address(contract)
        name = function_abi["name"]
        instance = w3.eth.contract(address=address, abi=[function_abi])

        try:
            if not function_abi.get("outputs"):
                return await self._call_without_outputs(w3, instance, address, name, args)
            return await instance.functions[name](*args).call()
        except ContractLogicError as e:
            raise ContractReverted(f"{name}() reverted on {address}: {e}", contract=address, function=name) from e
        except BadFunctionCallOutput as e:
            raise OutputDecodeError(
                f"{name}() output could not be decoded on {address}: {e}", contract=address, function=name
            ) from e
        except ChainReadError:
            raise
        except Web3Exception as e:
            raise ChainReadError(f"{name}() call failed on {address}: {e}", contract=address, function=name) from e
        except (OSError, TimeoutError) as e:
            raise ChainReadError(f"RPC unreachable for chain {chain_id}: {e}", contract=address, function=name) from e

    async def _call_without_outputs(self, w3: AsyncWeb3, instance, address: str, name: str, args: Sequence[Any]):
        data = instance.encode_abi(name, args=list(args))
        result = await w3.eth.call({"to": address, "data": data})
        if not result and not await w3.eth.get_code(address):
            raise ContractReverted(f"No contract code at {address}", contract=address, function=name)
        return None


class Web3Writer(Web3Provider, Writer):
    """
    ``Writer`` sending transactions from a node-managed account.

    The node (or a wallet bridge exposing JSON-RPC) signs the transaction;
    this class only builds and submits it via ``eth_sendTransaction``.

    Args:
        from_address: Sending account; the node's first account if omitted
        receipt_timeout: Seconds to wait for inclusion
        poll_interval: Seconds between receipt polls
    """

    def __init__(
        self,
        from_address: Optional[str] = None,
        rpc_urls: Optional[Dict[int, str]] = None,
        rpc_key: Optional[str] = None,
        request_timeout: int = 30,
        receipt_timeout: float = 120,
        poll_interval: float = 2,
    ):
        super().__init__(rpc_urls=rpc_urls, rpc_key=rpc_key, request_timeout=request_timeout)
        self._from_address = AsyncWeb3.to_checksum_address(from_address) if from_address else None
        self._receipt_timeout = receipt_timeout
        self._poll_interval = poll_interval

    async def _sender(self, w3: AsyncWeb3) -> str:
        if self._from_address:
            return self._from_address
        accounts = await w3.eth.accounts
        if not accounts:
            raise SubmissionFailed("Node exposes no account to send from", submitted=False)
        return accounts[0]

    async def write(
        self,
        chain_id: int,
        contract: str,
        function_abi: Dict[str, Any],
        args: Sequence[Any] = (),
    ) -> str:
        w3 = self._get_web3_instance(chain_id)
        address = AsyncWeb3.to_checksum_address(contract)
        name = function_abi["name"]
        instance = w3.eth.contract(address=address, abi=[function_abi])
        try:
            sender = await self._sender(w3)
            tx_hash = await instance.functions[name](*args).transact({"from": sender, "chainId": chain_id})
        except SubmissionFailed:
            raise
        except (Web3Exception, ValueError, OSError) as e:
            raise SubmissionFailed(f"{name}() submission to {address} failed: {e}", submitted=False) from e

        tx_hash_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info(f"Submitted {name}() to {address} on chain {chain_id}: {tx_hash_hex}")
        return tx_hash_hex

    async def wait_for_receipt(self, chain_id: int, tx_hash: str) -> TransactionReceipt:
        w3 = self._get_web3_instance(chain_id)
        try:
            receipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout, poll_latency=self._poll_interval
            )
        except TimeExhausted as e:
            raise SubmissionFailed(
                f"Transaction {tx_hash} not mined within {self._receipt_timeout}s",
                submitted=True,
                tx_hash=tx_hash,
            ) from e

        return TransactionReceipt(
            tx_hash=tx_hash,
            status=receipt.get("status", 0),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )


class Web3Signer(Web3Provider, Signer):
    """
    ``Signer`` delegating to ``eth_signTypedData_v4`` on a node-managed account.

    Bound to one chain: ``get_chain_id`` reports the chain of the node the
    signer talks to.
    """

    def __init__(self, address: str, chain_id: int, rpc_urls: Optional[Dict[int, str]] = None, rpc_key: Optional[str] = None):
        super().__init__(rpc_urls=rpc_urls, rpc_key=rpc_key)
        self._address = AsyncWeb3.to_checksum_address(address)
        self._chain_id = chain_id

    async def get_address(self) -> str:
        return self._address

    async def get_chain_id(self) -> int:
        w3 = self._get_web3_instance(self._chain_id)
        return await w3.eth.chain_id

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        w3 = self._get_web3_instance(self._chain_id)
        try:
            response = await w3.provider.make_request(
                "eth_signTypedData_v4", [self._address, typed_data_to_json(typed_data)]
            )
        except (Web3Exception, OSError) as e:
            raise SignerRejected(f"eth_signTypedData_v4 failed: {e}") from e

        if "error" in response:
            raise SignerRejected(f"eth_signTypedData_v4 rejected: {response['error']}")
        return response["result"]

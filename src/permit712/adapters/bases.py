"""
Abstract Base Classes for External Collaborators

Defines the narrow interfaces through which the package talks to the outside
world. The typed-data builders and the execution dispatcher depend only on
these classes; concrete implementations (web3, a browser wallet bridge, test
fakes) plug in behind them.

Core Classes:
    - ChainReader: Read-only contract calls against an explicit chain
    - Signer: EIP-712 signing prompt of a wallet
    - Writer: State-changing contract calls sent through a wallet
    - NetworkRegistry: Chain metadata lookups (block explorer URLs)
    - Relayer: Relayed submission of signed macro calls

Every method takes the chain id explicitly; no implementation may rely on an
implicit "current chain".
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from ..schemas.bases import TransactionReceipt
from ..schemas.https import RelayResponse


class ChainReader(ABC):
    """
    Read-only contract access.

    ``function_abi`` is a single ABI function entry (the dict form consumed by
    ``web3.eth.contract``), which fully describes the function signature
    including its output types.
    """

    @abstractmethod
    async def read(
        self,
        chain_id: int,
        contract: str,
        function_abi: Dict[str, Any],
        args: Sequence[Any] = (),
    ) -> Any:
        """
        Call a view/pure function and return its decoded result.

        Functions with a single output return that value; functions with
        several outputs return a tuple; functions declared without outputs
        return ``None``.

        Raises:
            ContractReverted: The call reverted or the address has no code.
            OutputDecodeError: Return data did not decode against the outputs.
            ChainReadError: Any other transport failure.
        """
        pass


class Signer(ABC):
    """
    External EIP-712 signer (wallet prompt, remote signer, hardware device).

    Library code never sees key material; it hands the typed-data dict to
    the signer and receives the 65-byte signature as a hex string.
    """

    @abstractmethod
    async def get_address(self) -> str:
        """Return the checksum address that will produce signatures."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Return the chain id the signer is currently connected to."""
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        """
        Sign an ``eth_signTypedData_v4`` payload.

        Returns:
            0x-prefixed 130-hex-char signature (r || s || v).

        Raises:
            SignerRejected: The user or device declined, or signing failed.
        """
        pass


class Writer(ABC):
    """State-changing contract calls sent through the connected wallet."""

    @abstractmethod
    async def write(
        self,
        chain_id: int,
        contract: str,
        function_abi: Dict[str, Any],
        args: Sequence[Any] = (),
    ) -> str:
        """
        Submit a transaction calling ``function_abi`` on ``contract``.

        Returns:
            Transaction hash (0x-prefixed) as soon as the wallet accepted it.
        """
        pass

    @abstractmethod
    async def wait_for_receipt(self, chain_id: int, tx_hash: str) -> TransactionReceipt:
        """Wait until ``tx_hash`` is included and return its receipt."""
        pass


class NetworkRegistry(ABC):
    """Chain metadata lookups."""

    @abstractmethod
    def explorer_url_for(self, chain_id: int) -> Optional[str]:
        """
        Return the block explorer base URL for ``chain_id``.

        Returns ``None`` when no explorer is known; callers omit links then.
        """
        pass


class Relayer(ABC):
    """Gas-paying relay service that broadcasts pre-signed macro calls."""

    @abstractmethod
    async def relay(self, macro: str, params: bytes, signer: str, signature: str) -> RelayResponse:
        """
        Submit a signed macro call.

        Returns:
            RelayResponse carrying the transaction hash.

        Raises:
            RelayTransportError: The relayer was unreachable or answered non-2xx.
            RelayRejected: The relayer reported ``status: "failed"``.
        """
        pass

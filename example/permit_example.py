from permit712.adapters.evm import (
    PermitTypedDataBuilder,
    StaticNetworkRegistry,
    Web3ChainReader,
    Web3Signer,
    Web3Writer,
)
from permit712.engine import ExecutionDispatcher
from permit712.flows import PermitFlow
from permit712.utils import setup_logger

owner = "0xxxx"    # Node-managed account that signs the permit
spender = "0xxxx"  # Account that will submit the permit
usdc = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
chain_id = 11155111

setup_logger("DEBUG")


async def main():
    reader = Web3ChainReader()
    flow = PermitFlow(
        PermitTypedDataBuilder(reader),
        Web3Signer(owner, chain_id),
        ExecutionDispatcher(writer=Web3Writer(from_address=spender), registry=StaticNetworkRegistry()),
    )

    signed = await flow.sign(usdc, spender, "0.8", chain_id)
    print("Digest:", signed.digest)
    print("Signature:", signed.signature)

    return await flow.submit(signed, on_submitted=lambda tx_hash: print("Submitted:", tx_hash))


if __name__ == "__main__":
    import asyncio
    result = asyncio.run(main())
    print("Result:", result.state, result.explorer_url)

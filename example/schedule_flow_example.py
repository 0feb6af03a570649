import time

from permit712.adapters.evm import (
    FlowScheduleTypedDataBuilder,
    ScheduleFlowParams,
    StaticNetworkRegistry,
    Web3ChainReader,
    Web3Signer,
    default_end_date,
    default_start_date,
    tokens_per_day_to_flow_rate,
)
from permit712.adapters.evm.constants import DEFAULT_START_MAX_DELAY
from permit712.clients import RelayerClient
from permit712.engine import ExecutionDispatcher
from permit712.flows import ScheduleFlowFlow
from permit712.utils import setup_logger

# Forwarder and macro addresses are read from
# PERMIT712_FORWARDER_ADDRESS_11155420 / PERMIT712_FLOW_SCHEDULER_MACRO_ADDRESS_11155420,
# the relayer from PERMIT712_RELAYER_URL.
sender = "0xxxx"
super_token = "0xxxx"
receiver = "0xxxx"
chain_id = 11155420

setup_logger("INFO")


async def main():
    now = int(time.time())
    params = ScheduleFlowParams(
        super_token=super_token,
        receiver=receiver,
        start_date=default_start_date(now),
        start_max_delay=DEFAULT_START_MAX_DELAY,
        flow_rate=tokens_per_day_to_flow_rate("1"),
        end_date=default_end_date(now),
    )

    async with RelayerClient() as relayer:
        flow = ScheduleFlowFlow(
            FlowScheduleTypedDataBuilder(Web3ChainReader()),
            Web3Signer(sender, chain_id),
            ExecutionDispatcher(relayer=relayer, registry=StaticNetworkRegistry()),
        )
        signed = await flow.sign(params, chain_id)
        print("Description:", signed.prepared.description)
        return await flow.relay(signed)


if __name__ == "__main__":
    import asyncio
    result = asyncio.run(main())
    print("Result:", result.state, result.tx_hash, result.explorer_url)

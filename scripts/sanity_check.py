"""Minimal sanity checks for the EVM MCP tools against the configured endpoints."""

from __future__ import annotations

import asyncio
import os
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from evm_mcp.evm_api import default_manager  # noqa: E402
from evm_mcp.tools import (  # noqa: E402
    get_balance,
    get_block_number,
    get_chain_id,
    get_gas_price,
    get_network_status,
    validate_address,
)

# Well-known burn address; override via env.
SAMPLE_ADDRESS = os.getenv("EVM_SAMPLE_ADDRESS", "0x000000000000000000000000000000000000dEaD")
SAMPLE_CHAIN = os.getenv("EVM_SAMPLE_CHAIN", "ethereum")
# Opt-in to probing every chain (slower; touches all public endpoints).
RUN_ALL_CHAINS = os.getenv("RUN_ALL_CHAINS_SANITY", "false").lower() in {"1", "true", "yes"}


async def main() -> None:
    default_manager.init()
    try:
        print("Validate address:", validate_address(SAMPLE_ADDRESS))
        print("Chain id:", await get_chain_id(SAMPLE_CHAIN))
        print("Block number:", await get_block_number(SAMPLE_CHAIN))
        print("Gas price:", await get_gas_price(SAMPLE_CHAIN))
        print("Balance:", await get_balance(SAMPLE_CHAIN, SAMPLE_ADDRESS))
        if RUN_ALL_CHAINS:
            print("Network status:", await get_network_status())
        print("Manager status:", default_manager.status())
    finally:
        await default_manager.shutdown()


if __name__ == "__main__":
    asyncio.run(main())

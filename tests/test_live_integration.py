import os

import pytest
import pytest_asyncio

from evm_mcp.chains import CHAIN_INFO, ChainKey
from evm_mcp.config import EvmConfig
from evm_mcp.evm_api import ClientManager
from evm_mcp.tools import get_balance, get_block_number, get_chain_id

LIVE = os.getenv("EVM_MCP_LIVE_TESTS") in {"1", "true", "yes"}
LIVE_CHAIN = os.getenv("EVM_MCP_LIVE_CHAIN", "ethereum")
SAMPLE_ADDRESS = os.getenv("EVM_MCP_SAMPLE_ADDRESS", "0x000000000000000000000000000000000000dEaD")


pytestmark = pytest.mark.skipif(not LIVE, reason="Live RPC integration tests are disabled")


@pytest_asyncio.fixture
async def live_manager():
    manager = ClientManager(EvmConfig(timeout=15.0))
    manager.init()
    yield manager
    await manager.shutdown()


@pytest.mark.asyncio
async def test_live_chain_id_matches(live_manager):
    result = await get_chain_id(LIVE_CHAIN, manager=live_manager)
    assert result["success"] is True, result
    assert result["chainId"] == CHAIN_INFO[ChainKey(LIVE_CHAIN)].chain_id


@pytest.mark.asyncio
async def test_live_block_number_and_balance(live_manager):
    block = await get_block_number(LIVE_CHAIN, manager=live_manager)
    assert block["success"] is True, block
    assert block["blockNumber"] > 0
    balance = await get_balance(LIVE_CHAIN, SAMPLE_ADDRESS, manager=live_manager)
    assert balance["success"] is True, balance
    assert int(balance["balanceWei"]) >= 0


@pytest.mark.asyncio
async def test_live_connection_is_cached(live_manager):
    first = await live_manager.get_provider(LIVE_CHAIN)
    second = await live_manager.get_provider(LIVE_CHAIN)
    assert first is second

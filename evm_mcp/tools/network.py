"""Chain metadata and connectivity tools."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from evm_mcp.chains import CHAIN_INFO, SUPPORTED_CHAINS, ChainKey, parse_chain_key
from evm_mcp.evm_api import NETWORK_ERRORS, EvmApiError, ManagerNotInitializedError, default_manager
from evm_mcp.tools.common import (
    WEI_PER_GWEI,
    error_response,
    format_units,
    success_response,
    unsupported_chain_message,
)
from evm_mcp.tools.validators import is_tx_hash, is_valid_evm_address

logger = logging.getLogger(__name__)


def _static_info(key: ChainKey) -> Dict[str, Any]:
    info = CHAIN_INFO[key]
    return {
        "chain": key.value,
        "name": info.name,
        "chainId": info.chain_id,
        "nativeToken": info.native_token,
        "explorer": info.explorer,
        "testnet": info.testnet,
    }


async def _live_info(key: ChainKey, manager) -> Dict[str, Any]:
    details = _static_info(key)
    details.update({"connected": False, "currentBlock": None, "gasPriceGwei": None})
    connection = None
    try:
        connection = await manager.get_provider(key.value)
        details["currentBlock"] = await connection.get_block_number()
        details["gasPriceGwei"] = format_units(await connection.get_gas_price(), WEI_PER_GWEI)
        details["connected"] = True
    except ManagerNotInitializedError:
        raise
    except NETWORK_ERRORS as exc:
        if connection is not None:
            await manager.report_failure(key.value, connection)
        details["error"] = str(exc)
    except EvmApiError as exc:
        details["error"] = str(exc)
    return details


async def get_chain_info(chain: str = "all", manager=default_manager) -> Dict[str, Any]:
    """
    Return configuration and live connectivity for one chain, or all of them.

    Args:
        chain: Supported chain key, or "all".
        manager: Client manager (override for testing).
    """
    start = time.monotonic()
    try:
        if isinstance(chain, str) and chain.strip().lower() == "all":
            chains = await asyncio.gather(*(_live_info(key, manager) for key in ChainKey))
            return success_response(start, totalChains=len(chains), chains=list(chains))

        key = parse_chain_key(chain)
        if key is None:
            return error_response(start, unsupported_chain_message(chain), chain=str(chain))
        details = await _live_info(key, manager)
    except ManagerNotInitializedError:
        return error_response(start, "Client manager not initialized.")
    except Exception:
        logger.exception("Unexpected error building chain info")
        return error_response(start, "Unexpected error.")
    details.pop("chain")
    return success_response(start, chain=key.value, **details)


def list_supported_chains() -> Dict[str, Any]:
    """List supported chain keys with static metadata; no network calls."""
    start = time.monotonic()
    return success_response(
        start,
        totalChains=len(SUPPORTED_CHAINS),
        chains=[_static_info(key) for key in ChainKey],
    )


async def get_network_status(manager=default_manager) -> Dict[str, Any]:
    """Probe every chain once and report which ones are reachable."""
    start = time.monotonic()
    try:
        results = await manager.test_all_connections()
    except ManagerNotInitializedError:
        return error_response(start, "Client manager not initialized.")
    except Exception:
        logger.exception("Unexpected error testing connections")
        return error_response(start, "Unexpected error.")
    return success_response(
        start,
        connections=results,
        healthy=sum(1 for ok in results.values() if ok),
        total=len(results),
    )


def get_explorer_url(
    chain: str,
    address: Optional[str] = None,
    tx_hash: Optional[str] = None,
    manager=default_manager,
) -> Dict[str, Any]:
    """Build a block-explorer link for an address or transaction hash."""
    start = time.monotonic()
    key = parse_chain_key(chain)
    if key is None:
        return error_response(start, unsupported_chain_message(chain), chain=str(chain))
    if tx_hash is not None:
        if not is_tx_hash(tx_hash):
            return error_response(start, "Invalid transaction hash.", chain=key.value)
        return success_response(
            start, chain=key.value, url=manager.transaction_explorer_url(key, tx_hash)
        )
    if address is not None:
        if not is_valid_evm_address(address):
            return error_response(start, "Invalid address.", chain=key.value)
        return success_response(start, chain=key.value, url=manager.explorer_url(key, address))
    return success_response(start, chain=key.value, url=CHAIN_INFO[key].explorer)

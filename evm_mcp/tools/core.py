"""Core chain query tools: blocks, balances, gas, nonces, code."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from evm_mcp.chains import CHAIN_INFO, parse_chain_key
from evm_mcp.config import default_config
from evm_mcp.evm_api import default_manager, hex_to_int
from evm_mcp.tools.common import (
    WEI_PER_ETHER,
    WEI_PER_GWEI,
    error_response,
    format_units,
    run_chain_call,
)
from evm_mcp.tools.validators import is_valid_evm_address, normalize_block_tag

logger = logging.getLogger(__name__)


async def get_block_number(chain: str, manager=default_manager) -> Dict[str, Any]:
    """
    Return the latest block number for a chain.

    Args:
        chain: Supported chain key (e.g. "ethereum").
        manager: Client manager (override for testing).
    """

    async def handler(connection) -> Dict[str, Any]:
        return {"blockNumber": await connection.get_block_number()}

    return await run_chain_call("get_block_number", chain, manager, handler)


async def get_chain_id(chain: str, manager=default_manager) -> Dict[str, Any]:
    """Return the numeric chain id reported by the chain's endpoint."""

    async def handler(connection) -> Dict[str, Any]:
        chain_id = await connection.get_chain_id()
        key = parse_chain_key(chain)
        return {
            "chainId": chain_id,
            "chainIdHex": hex(chain_id),
            "name": CHAIN_INFO[key].name if key else None,
        }

    return await run_chain_call("get_chain_id", chain, manager, handler)


async def get_balance(
    chain: str, address: str, block: Optional[str] = None, manager=default_manager
) -> Dict[str, Any]:
    """Return the native token balance of an address in wei and whole units."""
    start = time.monotonic()
    if not is_valid_evm_address(address):
        return error_response(start, "Invalid address.", chain=str(chain))
    block_tag = normalize_block_tag(block)
    if block_tag is None:
        return error_response(start, "Invalid block tag.", chain=str(chain))

    async def handler(connection) -> Dict[str, Any]:
        wei = await connection.get_balance(address, block_tag)
        key = parse_chain_key(chain)
        return {
            "address": address,
            "block": block_tag,
            "balanceWei": str(wei),
            "balance": format_units(wei, WEI_PER_ETHER),
            "symbol": CHAIN_INFO[key].native_token if key else None,
        }

    return await run_chain_call("get_balance", chain, manager, handler, start=start)


async def get_gas_price(chain: str, manager=default_manager) -> Dict[str, Any]:
    """Return the current gas price in wei and gwei."""

    async def handler(connection) -> Dict[str, Any]:
        wei = await connection.get_gas_price()
        return {"gasPriceWei": str(wei), "gasPriceGwei": format_units(wei, WEI_PER_GWEI)}

    return await run_chain_call("get_gas_price", chain, manager, handler)


async def get_transaction_count(
    chain: str, address: str, block: Optional[str] = None, manager=default_manager
) -> Dict[str, Any]:
    """Return the nonce (transaction count) of an address."""
    start = time.monotonic()
    if not is_valid_evm_address(address):
        return error_response(start, "Invalid address.", chain=str(chain))
    block_tag = normalize_block_tag(block)
    if block_tag is None:
        return error_response(start, "Invalid block tag.", chain=str(chain))

    async def handler(connection) -> Dict[str, Any]:
        count = await connection.get_transaction_count(address, block_tag)
        return {"address": address, "block": block_tag, "transactionCount": count}

    return await run_chain_call("get_transaction_count", chain, manager, handler, start=start)


async def get_code(chain: str, address: str, manager=default_manager) -> Dict[str, Any]:
    """Return deployed bytecode at an address and whether it is a contract."""
    start = time.monotonic()
    if not is_valid_evm_address(address):
        return error_response(start, "Invalid address.", chain=str(chain))

    async def handler(connection) -> Dict[str, Any]:
        code = await connection.get_code(address)
        is_contract = code not in ("", "0x", "0x0")
        return {
            "address": address,
            "code": code,
            "isContract": is_contract,
            "codeSize": (len(code) - 2) // 2 if is_contract else 0,
        }

    return await run_chain_call("get_code", chain, manager, handler, start=start)


def _summarize_transactions(raw: Any, *, full: bool, max_items: int) -> List[Any]:
    if not isinstance(raw, list):
        return []
    items: List[Any] = []
    for tx in raw[:max_items]:
        if full and isinstance(tx, dict):
            items.append(
                {
                    "hash": tx.get("hash"),
                    "from": tx.get("from"),
                    "to": tx.get("to"),
                    "value": str(hex_to_int(tx.get("value", "0x0"))),
                }
            )
        elif isinstance(tx, str):
            items.append(tx)
    return items


async def get_block(
    chain: str,
    block: Optional[str] = None,
    full_transactions: bool = False,
    manager=default_manager,
) -> Dict[str, Any]:
    """
    Return a summary of a block.

    Args:
        chain: Supported chain key.
        block: Block tag or number (default "latest").
        full_transactions: Include from/to/value for each transaction.
        manager: Client manager (override for testing).

    Returns:
        Envelope with number, hash, timestamp, gas fields and up to
        ``max_block_transactions`` transactions.
    """
    start = time.monotonic()
    block_tag = normalize_block_tag(block)
    if block_tag is None:
        return error_response(start, "Invalid block tag.", chain=str(chain))
    full = bool(full_transactions)
    max_items = default_config.max_block_transactions

    async def handler(connection) -> Dict[str, Any]:
        raw_block = await connection.get_block(block_tag, full)
        if raw_block is None:
            return {"block": None, "found": False}
        transactions = raw_block.get("transactions") or []
        summary: Dict[str, Any] = {
            "number": hex_to_int(raw_block.get("number", "0x0")),
            "hash": raw_block.get("hash"),
            "parentHash": raw_block.get("parentHash"),
            "timestamp": hex_to_int(raw_block.get("timestamp", "0x0")),
            "gasUsed": str(hex_to_int(raw_block.get("gasUsed", "0x0"))),
            "gasLimit": str(hex_to_int(raw_block.get("gasLimit", "0x0"))),
            "miner": raw_block.get("miner"),
            "transactionCount": len(transactions) if isinstance(transactions, list) else 0,
            "transactions": _summarize_transactions(transactions, full=full, max_items=max_items),
        }
        base_fee = raw_block.get("baseFeePerGas")
        if base_fee is not None:
            summary["baseFeePerGas"] = str(hex_to_int(base_fee))
        return {"block": summary, "found": True}

    return await run_chain_call("get_block", chain, manager, handler, start=start)

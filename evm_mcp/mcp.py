"""
Lightweight JSON-RPC surface for MCP-style tooling.

This keeps a minimal mapping of tool names to the implementations in
``evm_mcp.tools``. It is stateless; the caller must handle authentication to
the HTTP server hosting this adapter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from evm_mcp.chains import SUPPORTED_CHAINS
from evm_mcp.tools import (
    get_balance,
    get_block,
    get_block_number,
    get_chain_id,
    get_chain_info,
    get_code,
    get_explorer_url,
    get_gas_price,
    get_network_status,
    get_transaction_count,
    list_supported_chains,
    validate_address,
)
from evm_mcp.tools.validators import ADDRESS_REGEX, TX_HASH_REGEX

logger = logging.getLogger(__name__)

CHAIN_SCHEMA: Dict[str, Any] = {
    "type": "string",
    "description": "Target chain",
    "enum": list(SUPPORTED_CHAINS),
}
ADDRESS_SCHEMA: Dict[str, Any] = {
    "type": "string",
    "description": "EVM address (0x-prefixed, 40 hex chars)",
    "pattern": ADDRESS_REGEX.pattern,
}
BLOCK_SCHEMA: Dict[str, Any] = {
    "type": ["string", "integer"],
    "description": "Block number, 0x-hex number, or tag (latest, earliest, pending, safe, finalized)",
}


def _object_schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


ToolCallable = Callable[..., Awaitable[Any]] | Callable[..., Any]


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    params: Dict[str, Any]
    input_schema: Dict[str, Any]
    callable: ToolCallable


TOOL_REGISTRY: Dict[str, ToolDefinition] = {
    "evm_get_block_number": ToolDefinition(
        name="evm_get_block_number",
        description="Get the latest block number of a chain.",
        params={"chain": "string (required)"},
        input_schema=_object_schema({"chain": CHAIN_SCHEMA}, ["chain"]),
        callable=get_block_number,
    ),
    "evm_get_chain_id": ToolDefinition(
        name="evm_get_chain_id",
        description="Get the numeric chain id reported by a chain's RPC endpoint.",
        params={"chain": "string (required)"},
        input_schema=_object_schema({"chain": CHAIN_SCHEMA}, ["chain"]),
        callable=get_chain_id,
    ),
    "evm_get_balance": ToolDefinition(
        name="evm_get_balance",
        description="Get the native token balance of an address.",
        params={
            "chain": "string (required)",
            "address": "string (required)",
            "block": "string|integer (optional, default latest)",
        },
        input_schema=_object_schema(
            {"chain": CHAIN_SCHEMA, "address": ADDRESS_SCHEMA, "block": BLOCK_SCHEMA},
            ["chain", "address"],
        ),
        callable=get_balance,
    ),
    "evm_get_gas_price": ToolDefinition(
        name="evm_get_gas_price",
        description="Get the current gas price in wei and gwei.",
        params={"chain": "string (required)"},
        input_schema=_object_schema({"chain": CHAIN_SCHEMA}, ["chain"]),
        callable=get_gas_price,
    ),
    "evm_get_transaction_count": ToolDefinition(
        name="evm_get_transaction_count",
        description="Get the transaction count (nonce) of an address.",
        params={
            "chain": "string (required)",
            "address": "string (required)",
            "block": "string|integer (optional, default latest)",
        },
        input_schema=_object_schema(
            {"chain": CHAIN_SCHEMA, "address": ADDRESS_SCHEMA, "block": BLOCK_SCHEMA},
            ["chain", "address"],
        ),
        callable=get_transaction_count,
    ),
    "evm_get_code": ToolDefinition(
        name="evm_get_code",
        description="Get deployed bytecode at an address and whether it is a contract.",
        params={"chain": "string (required)", "address": "string (required)"},
        input_schema=_object_schema(
            {"chain": CHAIN_SCHEMA, "address": ADDRESS_SCHEMA}, ["chain", "address"]
        ),
        callable=get_code,
    ),
    "evm_get_block": ToolDefinition(
        name="evm_get_block",
        description="Get a block summary by number or tag.",
        params={
            "chain": "string (required)",
            "block": "string|integer (optional, default latest)",
            "full_transactions": "boolean (optional)",
        },
        input_schema=_object_schema(
            {
                "chain": CHAIN_SCHEMA,
                "block": BLOCK_SCHEMA,
                "full_transactions": {"type": "boolean"},
            },
            ["chain"],
        ),
        callable=get_block,
    ),
    "evm_get_chain_info": ToolDefinition(
        name="evm_get_chain_info",
        description="Get configuration and connectivity for a chain, or for all chains.",
        params={"chain": "string (optional, default all)"},
        input_schema=_object_schema(
            {
                "chain": {
                    "type": "string",
                    "description": "Target chain or 'all'",
                    "enum": [*SUPPORTED_CHAINS, "all"],
                }
            },
            [],
        ),
        callable=get_chain_info,
    ),
    "evm_list_chains": ToolDefinition(
        name="evm_list_chains",
        description="List supported chains without calling any node.",
        params={},
        input_schema=_object_schema({}, []),
        callable=list_supported_chains,
    ),
    "evm_get_network_status": ToolDefinition(
        name="evm_get_network_status",
        description="Check connectivity to every supported chain.",
        params={},
        input_schema=_object_schema({}, []),
        callable=get_network_status,
    ),
    "evm_get_explorer_url": ToolDefinition(
        name="evm_get_explorer_url",
        description="Build a block explorer link for an address or transaction.",
        params={
            "chain": "string (required)",
            "address": "string (optional)",
            "tx_hash": "string (optional)",
        },
        input_schema=_object_schema(
            {
                "chain": CHAIN_SCHEMA,
                "address": ADDRESS_SCHEMA,
                "tx_hash": {"type": "string", "pattern": TX_HASH_REGEX.pattern},
            },
            ["chain"],
        ),
        callable=get_explorer_url,
    ),
    "evm_validate_address": ToolDefinition(
        name="evm_validate_address",
        description="Validate an EVM address (format and EIP-55 checksum) and return its checksummed form.",
        params={"address": "string (required)"},
        input_schema=_object_schema({"address": {"type": "string"}}, ["address"]),
        callable=lambda address: validate_address(address),
    ),
}


def list_tools() -> List[Dict[str, Any]]:
    """Return a simple list of available tools."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "params": tool.params,
            "inputSchema": tool.input_schema,
        }
        for tool in TOOL_REGISTRY.values()
    ]


async def call_tool(tool_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Dispatch to a tool by name."""
    params = params or {}
    tool = TOOL_REGISTRY.get(tool_name)
    if tool is None:
        return {"error": f"Unknown tool: {tool_name}"}
    # Tools take their own client manager as a keyword; callers may not override it.
    if "manager" in params:
        return {"error": "Invalid parameters."}

    # Match parameters by name; tools already handle validation and error shaping.
    try:
        result = tool.callable(**params)
        if isinstance(result, Awaitable):
            return await result  # type: ignore[return-value]
        return result
    except TypeError:
        return {"error": "Invalid parameters."}
    except Exception:
        logger.exception("Unexpected error calling tool %s", tool_name, extra={"tool": tool_name})
        return {"error": "Unexpected error while calling tool."}

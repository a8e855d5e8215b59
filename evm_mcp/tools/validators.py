"""Shared validation helpers for EVM MCP tools."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from web3 import Web3

from evm_mcp.chains import parse_chain_key

# 20-byte account address, 0x-prefixed hex. Mixed case must also pass EIP-55.
ADDRESS_REGEX = re.compile(r"^0x[0-9a-fA-F]{40}$")
TX_HASH_REGEX = re.compile(r"^0x[0-9a-fA-F]{64}$")
HEX_QUANTITY_REGEX = re.compile(r"^0x[0-9a-fA-F]+$")

BLOCK_TAGS = {"latest", "earliest", "pending", "safe", "finalized"}


def is_valid_chain(chain: Optional[str]) -> bool:
    return parse_chain_key(chain) is not None


def is_valid_evm_address(address: Optional[str]) -> bool:
    """
    Validate an EVM account address.

    All-lowercase and all-uppercase hex are accepted as-is; mixed-case input
    is treated as checksummed and must match its EIP-55 checksum.
    """
    if not address or not isinstance(address, str):
        return False
    address = address.strip()
    if not ADDRESS_REGEX.fullmatch(address):
        return False
    return Web3.is_address(address)


def to_checksum_address(address: str) -> Optional[str]:
    """Return the EIP-55 form of ``address``, or None if it is not valid."""
    if not is_valid_evm_address(address):
        return None
    return Web3.to_checksum_address(address.strip())


def is_tx_hash(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(TX_HASH_REGEX.fullmatch(value.strip()))


def normalize_block_tag(block: Any) -> Optional[str]:
    """
    Normalize a block selector to the JSON-RPC form.

    Accepts named tags, non-negative integers, decimal strings, and 0x-hex
    strings. Returns None when the value is not a valid selector.
    """
    if block is None:
        return "latest"
    if isinstance(block, bool):
        return None
    if isinstance(block, int):
        return hex(block) if block >= 0 else None
    if not isinstance(block, str):
        return None
    text = block.strip().lower()
    if text in BLOCK_TAGS:
        return text
    if HEX_QUANTITY_REGEX.fullmatch(text):
        return hex(int(text, 16))
    if text.isdigit():
        return hex(int(text))
    return None


def validate_address(address: str) -> Dict[str, Any]:
    """
    Validate an EVM address (format and EIP-55 checksum) without calling a node.

    Returns:
        {"isValid": True, "checksumAddress": "0x..."} or {"isValid": False}
    """
    checksummed = to_checksum_address(address)
    if checksummed is None:
        return {"isValid": False}
    return {"isValid": True, "checksumAddress": checksummed}

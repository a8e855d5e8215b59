"""LLM-facing tool implementations."""

from .core import (
    get_balance,
    get_block,
    get_block_number,
    get_chain_id,
    get_code,
    get_gas_price,
    get_transaction_count,
)
from .network import (
    get_chain_info,
    get_explorer_url,
    get_network_status,
    list_supported_chains,
)
from .validators import validate_address
from . import validators

__all__ = [
    "get_block_number",
    "get_chain_id",
    "get_balance",
    "get_gas_price",
    "get_transaction_count",
    "get_code",
    "get_block",
    "get_chain_info",
    "list_supported_chains",
    "get_network_status",
    "get_explorer_url",
    "validate_address",
    "validators",
]

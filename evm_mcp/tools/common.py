"""Response envelopes and error shaping shared by chain tools."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional

from evm_mcp.chains import SUPPORTED_CHAINS, parse_chain_key
from evm_mcp.evm_api import (
    NETWORK_ERRORS,
    EvmApiError,
    ManagerNotInitializedError,
)

logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal(10) ** 18
WEI_PER_GWEI = Decimal(10) ** 9


def elapsed_ms(start: float) -> str:
    return f"{int((time.monotonic() - start) * 1000)}ms"


def success_response(start: float, **payload: Any) -> Dict[str, Any]:
    return {"success": True, **payload, "executionTime": elapsed_ms(start)}


def error_response(start: float, message: str, *, chain: Optional[str] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {"success": False, "error": message}
    if chain is not None:
        response["chain"] = chain
    response["executionTime"] = elapsed_ms(start)
    return response


def unsupported_chain_message(chain: Any) -> str:
    return f"Unsupported chain: {chain}. Supported chains: {', '.join(SUPPORTED_CHAINS)}"


def format_units(value: int, unit: Decimal) -> str:
    """Render an integer amount in a larger unit without float rounding."""
    quantized = Decimal(value) / unit
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


async def run_chain_call(
    tool_name: str,
    chain: Any,
    manager,
    handler: Callable[[Any], Awaitable[Dict[str, Any]]],
    *,
    start: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Resolve a connection for ``chain``, run ``handler`` with it, and wrap the result.

    Network faults seen on the borrowed connection are reported back to the
    manager so the next call reconnects (possibly to another endpoint).
    """
    start = time.monotonic() if start is None else start
    key = parse_chain_key(chain)
    if key is None:
        return error_response(start, unsupported_chain_message(chain), chain=str(chain))

    connection = None
    try:
        connection = await manager.get_provider(key.value)
        payload = await handler(connection)
    except ManagerNotInitializedError:
        return error_response(start, "Client manager not initialized.", chain=key.value)
    except NETWORK_ERRORS as exc:
        if connection is not None:
            try:
                await manager.report_failure(key.value, connection)
            except EvmApiError:
                logger.exception("Failed to report connection failure for %s", key.value)
        return error_response(start, str(exc), chain=key.value)
    except EvmApiError as exc:
        return error_response(start, str(exc), chain=key.value)
    except Exception:
        logger.exception("Unexpected error in %s", tool_name, extra={"tool": tool_name})
        return error_response(start, "Unexpected error.", chain=key.value)

    return success_response(start, chain=key.value, **payload)

"""
JSON-RPC client bound to a single EVM endpoint.

Transport failures are mapped to ConnectionTimeoutError or
EndpointUnreachableError so callers can report them back to the manager;
JSON-RPC error objects and malformed payloads become RpcError.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from evm_mcp.evm_api.errors import (
    ConnectionTimeoutError,
    EndpointUnreachableError,
    RpcError,
)
from evm_mcp.evm_api.registry import EndpointDescriptor

logger = logging.getLogger(__name__)


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity ("0x1a") into an int."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError:
            pass
    raise RpcError("Unexpected response from node.", code="INVALID_QUANTITY")


class RpcConnection:
    """Async JSON-RPC 2.0 caller for one endpoint."""

    def __init__(
        self,
        endpoint: EndpointDescriptor,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    @property
    def chain_key(self) -> str:
        return self.endpoint.chain_key

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Send one JSON-RPC call and return its ``result`` member."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = await self._client.post(self.endpoint.url, json=payload)
        except httpx.TimeoutException as exc:
            logger.debug("RPC timeout method=%s endpoint=%s", method, self.endpoint.redacted_url)
            raise ConnectionTimeoutError(
                f"RPC request to {self.chain_key} timed out.",
                code="TIMEOUT",
                chain=self.chain_key,
            ) from exc
        except httpx.RequestError as exc:
            logger.debug(
                "RPC transport error method=%s endpoint=%s", method, self.endpoint.redacted_url
            )
            raise EndpointUnreachableError(
                f"RPC endpoint for {self.chain_key} unreachable.",
                code="UNREACHABLE",
                chain=self.chain_key,
            ) from exc

        if response.status_code in {429, 502, 503, 504}:
            raise EndpointUnreachableError(
                f"RPC endpoint for {self.chain_key} unavailable (HTTP {response.status_code}).",
                code=response.status_code,
                chain=self.chain_key,
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400 and not isinstance(data, dict):
            raise RpcError(
                f"RPC request failed (HTTP {response.status_code}).",
                code=response.status_code,
                chain=self.chain_key,
            )
        if not isinstance(data, dict):
            raise RpcError("Unexpected response from node.", chain=self.chain_key)

        error = data.get("error")
        if error is not None:
            code: Optional[int | str] = None
            message = "RPC error."
            if isinstance(error, dict):
                code = error.get("code")
                if isinstance(error.get("message"), str):
                    message = error["message"]
            elif isinstance(error, str):
                message = error
            raise RpcError(f"RPC request failed: {message}", code=code, chain=self.chain_key)

        if "result" not in data:
            raise RpcError("Unexpected response from node.", chain=self.chain_key)
        return data["result"]

    async def get_chain_id(self) -> int:
        return hex_to_int(await self.request("eth_chainId"))

    async def get_block_number(self) -> int:
        return hex_to_int(await self.request("eth_blockNumber"))

    async def get_gas_price(self) -> int:
        return hex_to_int(await self.request("eth_gasPrice"))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return hex_to_int(await self.request("eth_getBalance", [address, block]))

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return hex_to_int(await self.request("eth_getTransactionCount", [address, block]))

    async def get_code(self, address: str, block: str = "latest") -> str:
        code = await self.request("eth_getCode", [address, block])
        if not isinstance(code, str):
            raise RpcError("Unexpected response from node.", chain=self.chain_key)
        return code

    async def get_block(self, block: str = "latest", full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        result = await self.request("eth_getBlockByNumber", [block, full_transactions])
        if result is not None and not isinstance(result, dict):
            raise RpcError("Unexpected response from node.", chain=self.chain_key)
        return result

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"RpcConnection(chain={self.chain_key!r}, endpoint={self.endpoint.redacted_url!r})"

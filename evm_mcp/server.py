"""FastAPI application wiring EVM MCP tools to HTTP routes."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from evm_mcp import mcp
from evm_mcp.config import default_config
from evm_mcp.evm_api import default_manager
from evm_mcp.metrics import default_metrics
from evm_mcp.rate_limiter import PerKeyRateLimiter
from evm_mcp.tools import (
    get_balance,
    get_block_number,
    get_chain_id,
    get_gas_price,
    list_supported_chains,
    validate_address,
)

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("tool", "request_id", "error", "chain"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


_log_level = getattr(logging, default_config.log_level.upper(), logging.INFO)
if default_config.log_format.lower() == "json":
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=_log_level, handlers=[handler])
else:
    logging.basicConfig(level=_log_level)

rate_limiter = PerKeyRateLimiter(
    rate_per_sec=default_config.rate_limit_qps,
    per_tool=default_config.per_tool_rate_limits,
)
HEALTH_STATUS = {"status": "ok"}
APP_VERSION = "0.1.0"
MCP_SERVER_NAME = "evm-mcp-server"
MCP_SERVER_VERSION = APP_VERSION


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    default_manager.init()
    yield
    # Shutdown
    await default_manager.shutdown()


app = FastAPI(
    title="EVM MCP Server",
    description="Multi-chain EVM tool surface for LLM agents.",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    default_metrics.record_duration(request_id, duration_ms)
    response.headers["X-Request-ID"] = request_id
    return response


def _log_tool_result(tool_name: str, result: Dict[str, Any], request_id: Optional[str] = None) -> None:
    if isinstance(result, dict) and (result.get("error") or result.get("success") is False):
        logger.warning(
            "tool=%s outcome=error error=%s request_id=%s",
            tool_name,
            result.get("error"),
            request_id,
            extra={"tool": tool_name, "request_id": request_id, "error": result.get("error")},
        )
        default_metrics.record_tool(tool_name, success=False)
    else:
        logger.info(
            "tool=%s outcome=success request_id=%s",
            tool_name,
            request_id,
            extra={"tool": tool_name, "request_id": request_id},
        )
        default_metrics.record_tool(tool_name, success=True)


async def _enforce_rate_limit(tool_name: str) -> Optional[JSONResponse]:
    allowed = await rate_limiter.allow(tool_name)
    if not allowed:
        logger.warning("tool=%s outcome=rate_limited", tool_name)
        default_metrics.incr_rate_limited()
        # Return a JSON-RPC style error envelope for MCP clients.
        return JSONResponse(
            status_code=429,
            content={"jsonrpc": "2.0", "error": {"code": 429, "message": "Rate limit exceeded"}},
        )
    return None


async def _run_tool_route(request: Request, tool_name: str, call) -> JSONResponse:
    limited = await _enforce_rate_limit(tool_name)
    if limited:
        return limited
    result = await call()
    request_id = getattr(request.state, "request_id", None)
    _log_tool_result(tool_name, result if isinstance(result, dict) else {}, request_id)
    return JSONResponse(content=result)


@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Return in-process metrics snapshot."""
    return JSONResponse(content=default_metrics.snapshot())


@app.get("/chains")
async def chains() -> JSONResponse:
    """List supported chains (static metadata only)."""
    return JSONResponse(content=list_supported_chains())


@app.get("/chains/status")
async def chains_status() -> JSONResponse:
    """Cached connections and per-endpoint circuit state. Endpoint URLs are redacted."""
    return JSONResponse(content=default_manager.status())


@app.get("/tools/validate_address/{address}")
async def validate_address_route(request: Request, address: str) -> JSONResponse:
    """Proxy for validate_address tool."""

    async def call():
        return validate_address(address)

    return await _run_tool_route(request, "evm_validate_address", call)


@app.get("/tools/{chain}/block_number")
async def block_number(request: Request, chain: str) -> JSONResponse:
    """Proxy for get_block_number tool."""

    async def call():
        return await get_block_number(chain)

    return await _run_tool_route(request, "evm_get_block_number", call)


@app.get("/tools/{chain}/chain_id")
async def chain_id(request: Request, chain: str) -> JSONResponse:
    """Proxy for get_chain_id tool."""

    async def call():
        return await get_chain_id(chain)

    return await _run_tool_route(request, "evm_get_chain_id", call)


@app.get("/tools/{chain}/gas_price")
async def gas_price(request: Request, chain: str) -> JSONResponse:
    """Proxy for get_gas_price tool."""

    async def call():
        return await get_gas_price(chain)

    return await _run_tool_route(request, "evm_get_gas_price", call)


@app.get("/tools/{chain}/balance/{address}")
async def balance(
    request: Request,
    chain: str,
    address: str,
    block: str | None = Query(None, max_length=66),
) -> JSONResponse:
    """Proxy for get_balance tool."""

    async def call():
        return await get_balance(chain, address, block=block)

    return await _run_tool_route(request, "evm_get_balance", call)


class _RpcFailure(Exception):
    """A JSON-RPC level error for the /mcp gateway."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _rpc_result(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def _rpc_error(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


def _tool_content(result: Any) -> Dict[str, Any]:
    """Render a tool result as MCP content; failed envelopes set ``isError``."""
    if isinstance(result, dict) and (result.get("success") is False or "error" in result):
        return {
            "content": [{"type": "text", "text": str(result.get("error") or "Error")}],
            "isError": True,
            "structuredContent": result,
        }
    return {
        "content": [{"type": "text", "text": json.dumps(result, ensure_ascii=True, indent=2)}],
        "structuredContent": result,
    }


def _handle_initialize(params: Dict[str, Any]) -> Dict[str, Any]:
    protocol_version = params.get("protocolVersion")
    if not isinstance(protocol_version, str) or not protocol_version:
        raise _RpcFailure(-32602, "Invalid params")
    return {
        "protocolVersion": protocol_version,
        "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
        "capabilities": {"tools": {"listChanged": False}},
    }


async def _handle_tools_call(params: Dict[str, Any], request_id: Optional[str]) -> Any:
    tool_name = params.get("name")
    arguments = params.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(tool_name, str) or not tool_name.strip() or not isinstance(arguments, dict):
        raise _RpcFailure(-32602, "Invalid params")
    result = await mcp.call_tool(tool_name, arguments)
    _log_tool_result(tool_name, result if isinstance(result, dict) else {}, request_id)
    return _tool_content(result)


@app.post("/mcp")
async def mcp_gateway(request: Request) -> Response:
    """
    JSON-RPC 2.0 endpoint for MCP clients.

    Methods: ``initialize``, ``tools/list``, ``tools/call`` and the
    ``notifications/initialized`` notification (answered with 204).
    """
    request_id = getattr(request.state, "request_id", None)
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content=_rpc_error(None, -32700, "Parse error"))
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content=_rpc_error(None, -32600, "Invalid request"))

    method = body.get("method")
    rpc_id = body.get("id")
    params = body.get("params")
    if params is None:
        params = {}

    try:
        if not method:
            raise _RpcFailure(-32600, "Invalid request")
        if not isinstance(params, dict):
            raise _RpcFailure(-32602, "Invalid params")
        if method == "notifications/initialized":
            return Response(status_code=204)
        if method == "initialize":
            result = _handle_initialize(params)
        elif method == "tools/list":
            limited = await _enforce_rate_limit("tools/list")
            if limited:
                return limited
            result = {"tools": mcp.list_tools()}
        elif method == "tools/call":
            tool_name = params.get("name")
            if isinstance(tool_name, str) and tool_name:
                limited = await _enforce_rate_limit(tool_name)
                if limited:
                    return limited
            result = await _handle_tools_call(params, request_id)
        else:
            raise _RpcFailure(-32601, "Method not found")
    except _RpcFailure as exc:
        logger.debug(
            "mcp method=%s outcome=error code=%s",
            method,
            exc.code,
            extra={"request_id": request_id, "error": exc.code},
        )
        return JSONResponse(content=_rpc_error(rpc_id, exc.code, exc.message))

    logger.debug("mcp method=%s outcome=success", method, extra={"request_id": request_id})
    return JSONResponse(content=_rpc_result(rpc_id, result))


# Run with: uvicorn evm_mcp.server:app --reload

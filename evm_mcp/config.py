"""
Configuration helpers for the EVM MCP server.

This module centralizes RPC endpoint selection, timeouts, circuit-breaker
settings, and logging/rate-limit options. No secrets are stored in the
repository; RPC URLs (which may embed provider API keys) are read from the
environment or from a local JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from evm_mcp.chains import CHAIN_INFO, ChainKey

logger = logging.getLogger(__name__)

ENDPOINTS_FILE_ENV_VAR = "EVM_MCP_ENDPOINTS_FILE"


def _load_float(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value:
        try:
            return float(raw_value)
        except ValueError:
            return default
    return default


def _load_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value:
        try:
            return int(raw_value)
        except ValueError:
            return default
    return default


def _load_timeout() -> float:
    timeout = _load_float("EVM_MCP_RPC_TIMEOUT", 10.0)
    return timeout if timeout > 0 else 10.0


DEFAULT_TIMEOUT = _load_timeout()
DEFAULT_FAILURE_THRESHOLD = max(1, _load_int("EVM_MCP_FAILURE_THRESHOLD", 3))
DEFAULT_COOLDOWN_SECONDS = max(0.0, _load_float("EVM_MCP_COOLDOWN_SECONDS", 30.0))
DEFAULT_RATE_LIMIT_QPS = _load_float("EVM_MCP_RATE_LIMIT_QPS", 5.0)
LOG_LEVEL = os.getenv("EVM_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("EVM_MCP_LOG_FORMAT", "json")  # json or plain

# Safety limits
MAX_BLOCK_TRANSACTIONS = 50


def _parse_url_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated URL list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_tool_rate_limits(raw: Optional[str]) -> Dict[str, float]:
    """Parse ``tool=qps,tool2=qps`` into a mapping, skipping malformed pairs."""
    limits: Dict[str, float] = {}
    for part in _parse_url_list(raw):
        name, sep, value = part.partition("=")
        if not sep or not name.strip():
            continue
        try:
            limits[name.strip()] = float(value)
        except ValueError:
            continue
    return limits


def _env_endpoints(key: ChainKey, source: Mapping[str, str]) -> List[Dict[str, Any]]:
    info = CHAIN_INFO[key]
    primary = (source.get(info.rpc_env_var) or "").strip() or info.default_rpc_url
    entries: List[Dict[str, Any]] = [
        {"url": primary, "expectedChainId": info.chain_id, "priority": 0}
    ]
    seen = {primary.rstrip("/")}
    for url in _parse_url_list(source.get(info.fallback_env_var)):
        if url.rstrip("/") in seen:
            continue
        seen.add(url.rstrip("/"))
        entries.append(
            {"url": url, "expectedChainId": info.chain_id, "priority": -len(entries)}
        )
    return entries


def _load_endpoints_file(path: Path) -> Dict[str, List[Dict[str, Any]]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object keyed by chain")
    return data


def load_endpoint_table(env: Optional[Mapping[str, str]] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Build the raw ``{chain: [endpoint options]}`` table.

    A JSON file named by ``EVM_MCP_ENDPOINTS_FILE`` takes precedence for the
    chains it lists; every other chain uses ``<CHAIN>_RPC_URL`` (or the public
    default) followed by ``<CHAIN>_RPC_FALLBACK_URLS``.
    """
    source = os.environ if env is None else env
    table: Dict[str, List[Dict[str, Any]]] = {}
    file_path = source.get(ENDPOINTS_FILE_ENV_VAR)
    if file_path:
        path = Path(file_path)
        if path.is_file():
            table.update(_load_endpoints_file(path))
        else:
            logger.warning("Endpoints file %s not found; using environment defaults", file_path)
    for key in ChainKey:
        if key.value not in table:
            table[key.value] = _env_endpoints(key, source)
    return table


@dataclass(slots=True)
class EvmConfig:
    """Runtime configuration for RPC access and the tool server."""

    timeout: float = DEFAULT_TIMEOUT
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    endpoints: Optional[Dict[str, List[Dict[str, Any]]]] = None
    max_block_transactions: int = MAX_BLOCK_TRANSACTIONS
    rate_limit_qps: float = DEFAULT_RATE_LIMIT_QPS
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    per_tool_rate_limits: dict[str, float] = field(
        default_factory=lambda: _parse_tool_rate_limits(os.getenv("EVM_MCP_TOOL_RATE_LIMITS"))
    )

    def endpoint_table(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return the configured endpoint table, loading it lazily from the environment."""
        if self.endpoints is None:
            self.endpoints = load_endpoint_table()
        return self.endpoints


default_config = EvmConfig()

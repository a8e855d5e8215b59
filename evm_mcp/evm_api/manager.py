"""
Client manager facade: the only entry point tool handlers use to reach a chain.

A ClientManager is an explicitly constructed context object. The server uses
``default_manager``; tests build their own instances so registries and health
state never leak between them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from evm_mcp.chains import CHAIN_INFO, SUPPORTED_CHAINS, ChainInfo, ChainKey, parse_chain_key
from evm_mcp.config import EvmConfig, default_config
from evm_mcp.evm_api.connection import RpcConnection
from evm_mcp.evm_api.errors import (
    NETWORK_ERRORS,
    EvmApiError,
    ManagerNotInitializedError,
    UnsupportedChainError,
)
from evm_mcp.evm_api.health import HealthTracker
from evm_mcp.evm_api.pool import ConnectionFactory, ConnectionPool
from evm_mcp.evm_api.registry import EndpointDescriptor, EndpointRegistry
from evm_mcp.metrics import MetricsRecorder, default_metrics

logger = logging.getLogger(__name__)


class ClientManager:
    """Multi-chain connection manager with explicit init/shutdown lifecycle."""

    def __init__(
        self,
        config: EvmConfig | None = None,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsRecorder = default_metrics,
    ) -> None:
        self.config = config or default_config
        self._connection_factory = connection_factory or self._default_factory
        self._clock = clock
        self._metrics = metrics
        self._registry: Optional[EndpointRegistry] = None
        self._tracker: Optional[HealthTracker] = None
        self._pool: Optional[ConnectionPool] = None

    def _default_factory(self, endpoint: EndpointDescriptor) -> RpcConnection:
        return RpcConnection(endpoint, timeout=self.config.timeout)

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    @property
    def registry(self) -> EndpointRegistry:
        if self._registry is None:
            raise ManagerNotInitializedError("Client manager not initialized.")
        return self._registry

    @property
    def tracker(self) -> HealthTracker:
        if self._tracker is None:
            raise ManagerNotInitializedError("Client manager not initialized.")
        return self._tracker

    def _require_pool(self) -> ConnectionPool:
        if self._pool is None:
            raise ManagerNotInitializedError("Client manager not initialized.")
        return self._pool

    def init(self, table: Optional[Mapping[str, Any]] = None) -> None:
        """
        Build registry, tracker, and pool. Safe to call more than once.

        Args:
            table: Optional ``{chain: [{url, expectedChainId, priority}]}``
                table; defaults to the configured/environment endpoints.

        Raises:
            RegistryConfigError: If the endpoint table is invalid.
        """
        if self._pool is not None:
            return
        registry = EndpointRegistry.from_table(
            table if table is not None else self.config.endpoint_table()
        )
        tracker = HealthTracker(
            failure_threshold=self.config.failure_threshold,
            cooldown_seconds=self.config.cooldown_seconds,
            clock=self._clock,
        )
        self._registry = registry
        self._tracker = tracker
        self._pool = ConnectionPool(
            registry,
            tracker,
            connection_factory=self._connection_factory,
            attempt_timeout=self.config.timeout,
            clock=self._clock,
            metrics=self._metrics,
        )
        logger.info(
            "Client manager initialized chains=%d endpoints=%d",
            len(registry.chains()),
            len(registry.all_endpoints()),
        )

    async def get_provider(self, chain_key: ChainKey | str) -> Any:
        """
        Return the shared connection for ``chain_key``.

        The returned connection is borrowed: do not close it. Report
        network-level faults seen on it through report_failure().

        Raises:
            UnsupportedChainError: Unknown chain key (no network I/O).
            NoHealthyEndpointError: Every endpoint is open or failing.
            ManagerNotInitializedError: init() was not called.
        """
        pool = self._require_pool()
        return await pool.acquire(chain_key)

    async def report_failure(self, chain_key: ChainKey | str, connection: Optional[Any] = None) -> None:
        """Invalidate the cached connection for a chain after a caller-observed fault."""
        pool = self._require_pool()
        await pool.invalidate(chain_key, connection)

    async def shutdown(self) -> None:
        """Close cached connections and forget health state; init() may run again."""
        pool = self._pool
        tracker = self._tracker
        self._pool = None
        self._registry = None
        self._tracker = None
        if pool is not None:
            await pool.close()
        if tracker is not None:
            tracker.reset()
        logger.info("Client manager shut down")

    def supported_chains(self) -> List[str]:
        return list(SUPPORTED_CHAINS)

    def is_chain_supported(self, chain_key: object) -> bool:
        return parse_chain_key(chain_key) is not None

    def chain_info(self, chain_key: ChainKey | str) -> ChainInfo:
        key = parse_chain_key(chain_key)
        if key is None:
            raise UnsupportedChainError(str(chain_key), SUPPORTED_CHAINS)
        return CHAIN_INFO[key]

    def explorer_url(self, chain_key: ChainKey | str, address: str) -> str:
        return f"{self.chain_info(chain_key).explorer}/address/{address}"

    def transaction_explorer_url(self, chain_key: ChainKey | str, tx_hash: str) -> str:
        return f"{self.chain_info(chain_key).explorer}/tx/{tx_hash}"

    async def test_connection(self, chain_key: ChainKey | str) -> bool:
        """Return True if the chain answers eth_blockNumber with a positive height."""
        try:
            connection = await self.get_provider(chain_key)
        except (ManagerNotInitializedError, UnsupportedChainError):
            raise
        except EvmApiError:
            return False
        try:
            block_number = await connection.get_block_number()
        except NETWORK_ERRORS:
            await self.report_failure(chain_key, connection)
            return False
        except EvmApiError:
            return False
        return block_number > 0

    async def test_all_connections(self) -> Dict[str, bool]:
        chains = self.supported_chains()
        results = await asyncio.gather(*(self.test_connection(chain) for chain in chains))
        return dict(zip(chains, results))

    def last_errors(self) -> Dict[str, str]:
        """Latest acquisition failure message per chain (cleared on success)."""
        if self._pool is None:
            return {}
        return self._pool.last_errors()

    def status(self) -> Dict[str, Any]:
        if self._pool is None or self._tracker is None:
            return {"initialized": False, "chains": {}, "endpoints": []}
        return {
            "initialized": True,
            "chains": self._pool.status(),
            "endpoints": self._tracker.snapshot(),
        }


default_manager = ClientManager()

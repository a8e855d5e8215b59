"""Per-chain cached connections with priority failover."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from evm_mcp.evm_api.errors import (
    ChainIdMismatchError,
    ConnectionTimeoutError,
    EvmApiError,
    NoHealthyEndpointError,
)
from evm_mcp.evm_api.health import HealthTracker
from evm_mcp.evm_api.registry import EndpointDescriptor, EndpointRegistry
from evm_mcp.metrics import MetricsRecorder, default_metrics

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[EndpointDescriptor], Any]


@dataclass(slots=True)
class _CacheEntry:
    connection: Any
    created_at: float


class ConnectionPool:
    """
    Lazily establish and cache one connection per chain.

    Callers for the same uncached chain share a single establishment task;
    callers for different chains never wait on each other.
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        tracker: HealthTracker,
        *,
        connection_factory: ConnectionFactory,
        attempt_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsRecorder = default_metrics,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._factory = connection_factory
        self._attempt_timeout = attempt_timeout
        self._clock = clock
        self._metrics = metrics
        self._entries: Dict[str, _CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._last_endpoint: Dict[str, EndpointDescriptor] = {}
        self._last_errors: Dict[str, str] = {}

    def _lock_for(self, chain: str) -> asyncio.Lock:
        lock = self._locks.get(chain)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chain] = lock
        return lock

    def cached(self, chain_key: str) -> Optional[Any]:
        entry = self._entries.get(chain_key)
        return entry.connection if entry is not None else None

    async def acquire(self, chain_key: str) -> Any:
        descriptors = self._registry.resolve(chain_key)
        chain = descriptors[0].chain_key

        entry = self._entries.get(chain)
        if entry is not None:
            return entry.connection

        # The lock only guards the cache/pending lookup. Waiting happens outside
        # it, so every caller that joined an attempt shares its single outcome.
        async with self._lock_for(chain):
            entry = self._entries.get(chain)
            if entry is not None:
                return entry.connection
            task = self._pending.get(chain)
            if task is None:
                task = asyncio.ensure_future(self._establish(chain, descriptors))
                self._pending[chain] = task
                task.add_done_callback(lambda done, key=chain: self._finish_pending(key, done))
        # Shielded so an abandoned caller does not cancel the attempt;
        # it still completes and fills the cache for later callers.
        return await asyncio.shield(task)

    def _finish_pending(self, chain: str, task: asyncio.Task) -> None:
        if self._pending.get(chain) is task:
            del self._pending[chain]
        if not task.cancelled() and task.exception() is not None:
            self._last_errors[chain] = str(task.exception())

    async def _establish(self, chain: str, descriptors: Sequence[EndpointDescriptor]) -> Any:
        tried = 0
        last_error: Optional[BaseException] = None
        for descriptor in descriptors:
            if not self._tracker.is_usable(descriptor):
                logger.debug(
                    "Skipping unusable endpoint chain=%s endpoint=%s",
                    chain,
                    descriptor.redacted_url,
                    extra={"chain": chain},
                )
                continue
            tried += 1
            if tried > 1:
                self._metrics.incr_failover(chain)
            try:
                connection = await self._connect(descriptor)
            except ChainIdMismatchError as exc:
                logger.error(
                    "Chain id mismatch chain=%s endpoint=%s expected=%s actual=%s",
                    chain,
                    descriptor.redacted_url,
                    exc.expected,
                    exc.actual,
                    extra={"chain": chain, "error": exc.code},
                )
                self._tracker.record_failure(descriptor, fatal=True)
                self._metrics.incr_endpoint_failure(chain)
                last_error = exc
                continue
            except EvmApiError as exc:
                logger.warning(
                    "Endpoint failed chain=%s endpoint=%s error=%s",
                    chain,
                    descriptor.redacted_url,
                    exc.__class__.__name__,
                    extra={"chain": chain, "error": exc.__class__.__name__},
                )
                self._tracker.record_failure(descriptor)
                self._metrics.incr_endpoint_failure(chain)
                last_error = exc
                continue
            except BaseException:
                self._tracker.release_probe(descriptor)
                raise

            entry = self._entries.setdefault(
                chain, _CacheEntry(connection=connection, created_at=self._clock())
            )
            if entry.connection is not connection:
                await connection.aclose()
            self._last_endpoint[chain] = entry.connection.endpoint
            self._last_errors.pop(chain, None)
            self._metrics.incr_connection(chain)
            logger.info(
                "Connected chain=%s endpoint=%s priority=%s",
                chain,
                descriptor.redacted_url,
                descriptor.priority,
                extra={"chain": chain},
            )
            return entry.connection

        raise NoHealthyEndpointError(chain, tried) from last_error

    async def _connect(self, descriptor: EndpointDescriptor) -> Any:
        connection = self._factory(descriptor)
        try:
            actual = await asyncio.wait_for(connection.get_chain_id(), timeout=self._attempt_timeout)
        except asyncio.TimeoutError as exc:
            await connection.aclose()
            raise ConnectionTimeoutError(
                f"RPC endpoint for {descriptor.chain_key} timed out.",
                code="TIMEOUT",
                chain=descriptor.chain_key,
            ) from exc
        except BaseException:
            await connection.aclose()
            raise
        # The endpoint answered, so it is reachable; a wrong network is
        # recorded separately as a fatal failure by the caller.
        self._tracker.record_success(descriptor)
        if actual != descriptor.expected_chain_id:
            await connection.aclose()
            raise ChainIdMismatchError(descriptor.chain_key, descriptor.expected_chain_id, actual)
        return connection

    async def invalidate(self, chain_key: str, connection: Optional[Any] = None) -> None:
        """Drop the cached connection for ``chain_key`` and count a failure on its endpoint."""
        chain = self._registry.resolve(chain_key)[0].chain_key
        entry = self._entries.get(chain)
        if connection is not None and (entry is None or entry.connection is not connection):
            # Stale report: the cache already moved on to a different connection.
            self._tracker.record_failure(connection.endpoint)
            self._metrics.incr_endpoint_failure(chain)
            return

        endpoint: Optional[EndpointDescriptor] = None
        if entry is not None:
            del self._entries[chain]
            endpoint = entry.connection.endpoint
        else:
            endpoint = self._last_endpoint.get(chain)
        if endpoint is not None:
            self._tracker.record_failure(endpoint)
            self._metrics.incr_endpoint_failure(chain)
            logger.warning(
                "Invalidated connection chain=%s endpoint=%s",
                chain,
                endpoint.redacted_url,
                extra={"chain": chain},
            )
        if entry is not None:
            await entry.connection.aclose()

    def last_errors(self) -> Dict[str, str]:
        return dict(self._last_errors)

    def status(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        result: Dict[str, Dict[str, Any]] = {}
        for chain in self._registry.chains():
            entry = self._entries.get(chain)
            result[chain] = {
                "connected": entry is not None,
                "endpoint": entry.connection.endpoint.redacted_url if entry else None,
                "ageSeconds": round(now - entry.created_at, 3) if entry else None,
                "endpoints": self._registry.endpoint_count(chain),
                "lastError": self._last_errors.get(chain),
            }
        return result

    async def close(self) -> None:
        pending: List[asyncio.Task] = list(self._pending.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        entries = list(self._entries.values())
        self._entries.clear()
        self._pending.clear()
        self._locks.clear()
        self._last_endpoint.clear()
        self._last_errors.clear()
        for entry in entries:
            await entry.connection.aclose()

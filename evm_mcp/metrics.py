"""Minimal in-process metrics recorder (not suitable for multi-process aggregation)."""

from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Dict


class MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._request_durations_ms: Dict[str, float] = {}
        self._rate_limited = 0
        self._tool_success: Counter[str] = Counter()
        self._tool_error: Counter[str] = Counter()
        self._connections: Counter[str] = Counter()
        self._endpoint_failures: Counter[str] = Counter()
        self._failovers: Counter[str] = Counter()

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._request_durations_ms[request_id] = duration_ms

    def incr_rate_limited(self) -> None:
        with self._lock:
            self._rate_limited += 1

    def record_tool(self, tool: str, *, success: bool) -> None:
        with self._lock:
            if success:
                self._tool_success[tool] += 1
            else:
                self._tool_error[tool] += 1

    def incr_connection(self, chain: str) -> None:
        with self._lock:
            self._connections[chain] += 1

    def incr_endpoint_failure(self, chain: str) -> None:
        with self._lock:
            self._endpoint_failures[chain] += 1

    def incr_failover(self, chain: str) -> None:
        with self._lock:
            self._failovers[chain] += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "rate_limited": self._rate_limited,
                "tool_success": dict(self._tool_success),
                "tool_error": dict(self._tool_error),
                "connections_established": dict(self._connections),
                "endpoint_failures": dict(self._endpoint_failures),
                "failovers": dict(self._failovers),
                "recent_request_durations_ms": dict(self._request_durations_ms),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._request_durations_ms.clear()
            self._rate_limited = 0
            self._tool_success.clear()
            self._tool_error.clear()
            self._connections.clear()
            self._endpoint_failures.clear()
            self._failovers.clear()


default_metrics = MetricsRecorder()

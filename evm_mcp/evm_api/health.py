"""
Per-endpoint failure tracking with circuit-breaker semantics.

An endpoint starts CLOSED. After ``failure_threshold`` consecutive failures it
goes OPEN and is skipped until ``cooldown_seconds`` have passed since its last
failure. The first caller to ask after that gets a single trial (HALF_OPEN);
everyone else keeps treating the endpoint as unavailable until the trial's
outcome is recorded.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from evm_mcp.evm_api.registry import EndpointDescriptor


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(slots=True)
class HealthState:
    consecutive_failures: int = 0
    last_failure_at: Optional[float] = None
    state: CircuitState = CircuitState.CLOSED
    probe_in_flight: bool = False
    disabled: bool = False


class HealthTracker:
    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: Dict[EndpointDescriptor, HealthState] = {}

    def _state_for(self, endpoint: EndpointDescriptor) -> HealthState:
        state = self._states.get(endpoint)
        if state is None:
            state = HealthState()
            self._states[endpoint] = state
        return state

    def state(self, endpoint: EndpointDescriptor) -> HealthState:
        """Return the live health record for ``endpoint`` (read-only for callers)."""
        return self._state_for(endpoint)

    def record_success(self, endpoint: EndpointDescriptor) -> None:
        state = self._state_for(endpoint)
        state.consecutive_failures = 0
        state.state = CircuitState.CLOSED
        state.probe_in_flight = False

    def record_failure(self, endpoint: EndpointDescriptor, *, fatal: bool = False) -> None:
        state = self._state_for(endpoint)
        state.consecutive_failures += 1
        state.last_failure_at = self._clock()
        state.probe_in_flight = False
        if fatal:
            state.disabled = True
            state.state = CircuitState.OPEN
        elif state.state is CircuitState.HALF_OPEN:
            state.state = CircuitState.OPEN
        elif state.consecutive_failures >= self.failure_threshold:
            state.state = CircuitState.OPEN

    def is_usable(self, endpoint: EndpointDescriptor, now: Optional[float] = None) -> bool:
        """
        Return whether ``endpoint`` may be tried right now.

        A True answer for an OPEN endpoint reserves the single HALF_OPEN trial;
        the caller must follow up with record_success, record_failure, or
        release_probe.
        """
        state = self._state_for(endpoint)
        if state.disabled:
            return False
        if state.state is CircuitState.CLOSED:
            return True
        if state.state is CircuitState.HALF_OPEN or state.probe_in_flight:
            return False
        current = self._clock() if now is None else now
        last_failure = state.last_failure_at if state.last_failure_at is not None else current
        if current - last_failure <= self.cooldown_seconds:
            return False
        state.state = CircuitState.HALF_OPEN
        state.probe_in_flight = True
        return True

    def release_probe(self, endpoint: EndpointDescriptor) -> None:
        """Give back a trial that was reserved but never attempted."""
        state = self._state_for(endpoint)
        if state.state is CircuitState.HALF_OPEN:
            state.state = CircuitState.OPEN
        state.probe_in_flight = False

    def snapshot(self) -> List[Dict[str, object]]:
        now = self._clock()
        result: List[Dict[str, object]] = []
        for endpoint, state in self._states.items():
            result.append({
                "chain": endpoint.chain_key,
                "endpoint": endpoint.redacted_url,
                "priority": endpoint.priority,
                "state": state.state.value,
                "consecutiveFailures": state.consecutive_failures,
                "secondsSinceFailure": (
                    round(now - state.last_failure_at, 3)
                    if state.last_failure_at is not None
                    else None
                ),
                "disabled": state.disabled,
            })
        return result

    def reset(self) -> None:
        self._states.clear()

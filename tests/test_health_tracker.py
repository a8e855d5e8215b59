import pytest

from evm_mcp.evm_api.health import CircuitState, HealthTracker
from evm_mcp.evm_api.registry import EndpointDescriptor

ENDPOINT = EndpointDescriptor(url="https://a.test", chain_key="ethereum", expected_chain_id=11155111)


def _tracker(clock, threshold=3, cooldown=30.0):
    return HealthTracker(failure_threshold=threshold, cooldown_seconds=cooldown, clock=clock)


def test_new_endpoint_is_closed_and_usable(fake_clock):
    tracker = _tracker(fake_clock)
    assert tracker.is_usable(ENDPOINT)
    state = tracker.state(ENDPOINT)
    assert state.state is CircuitState.CLOSED
    assert state.consecutive_failures == 0


def test_opens_after_threshold(fake_clock):
    tracker = _tracker(fake_clock)
    tracker.record_failure(ENDPOINT)
    tracker.record_failure(ENDPOINT)
    assert tracker.is_usable(ENDPOINT)
    tracker.record_failure(ENDPOINT)
    state = tracker.state(ENDPOINT)
    assert state.state is CircuitState.OPEN
    assert state.last_failure_at == fake_clock.now
    assert not tracker.is_usable(ENDPOINT)


def test_success_resets_failures(fake_clock):
    tracker = _tracker(fake_clock)
    tracker.record_failure(ENDPOINT)
    tracker.record_failure(ENDPOINT)
    tracker.record_success(ENDPOINT)
    assert tracker.state(ENDPOINT).consecutive_failures == 0
    tracker.record_failure(ENDPOINT)
    assert tracker.state(ENDPOINT).state is CircuitState.CLOSED


def test_cooldown_allows_single_probe(fake_clock):
    tracker = _tracker(fake_clock, threshold=1, cooldown=10.0)
    tracker.record_failure(ENDPOINT)
    fake_clock.advance(10.0)
    assert not tracker.is_usable(ENDPOINT)

    fake_clock.advance(0.5)
    assert tracker.is_usable(ENDPOINT)
    assert tracker.state(ENDPOINT).state is CircuitState.HALF_OPEN
    # A second caller during the trial is turned away.
    assert not tracker.is_usable(ENDPOINT)

    tracker.record_success(ENDPOINT)
    state = tracker.state(ENDPOINT)
    assert state.state is CircuitState.CLOSED
    assert state.consecutive_failures == 0
    assert tracker.is_usable(ENDPOINT)


def test_failed_probe_reopens_with_new_cooldown(fake_clock):
    tracker = _tracker(fake_clock, threshold=3, cooldown=10.0)
    for _ in range(3):
        tracker.record_failure(ENDPOINT)
    fake_clock.advance(11)
    assert tracker.is_usable(ENDPOINT)
    tracker.record_failure(ENDPOINT)
    assert tracker.state(ENDPOINT).state is CircuitState.OPEN
    assert not tracker.is_usable(ENDPOINT)
    fake_clock.advance(11)
    assert tracker.is_usable(ENDPOINT)


def test_explicit_now_overrides_clock(fake_clock):
    tracker = _tracker(fake_clock, threshold=1, cooldown=5.0)
    tracker.record_failure(ENDPOINT)
    assert not tracker.is_usable(ENDPOINT, now=fake_clock.now + 1)
    assert tracker.is_usable(ENDPOINT, now=fake_clock.now + 6)


def test_release_probe_returns_to_open(fake_clock):
    tracker = _tracker(fake_clock, threshold=1, cooldown=1.0)
    tracker.record_failure(ENDPOINT)
    fake_clock.advance(2)
    assert tracker.is_usable(ENDPOINT)
    tracker.release_probe(ENDPOINT)
    state = tracker.state(ENDPOINT)
    assert state.state is CircuitState.OPEN
    assert state.consecutive_failures == 1
    assert tracker.is_usable(ENDPOINT)


def test_fatal_failure_disables_endpoint(fake_clock):
    tracker = _tracker(fake_clock, threshold=3, cooldown=1.0)
    tracker.record_failure(ENDPOINT, fatal=True)
    fake_clock.advance(1000)
    assert not tracker.is_usable(ENDPOINT)
    assert tracker.state(ENDPOINT).disabled
    tracker.reset()
    assert tracker.is_usable(ENDPOINT)


def test_snapshot_redacts_urls(fake_clock):
    tracker = _tracker(fake_clock)
    secret = EndpointDescriptor(url="https://node.test/key-123", chain_key="base", expected_chain_id=84532)
    tracker.record_failure(secret)
    fake_clock.advance(2)
    snapshot = tracker.snapshot()
    assert snapshot == [
        {
            "chain": "base",
            "endpoint": "https://node.test",
            "priority": 0,
            "state": "CLOSED",
            "consecutiveFailures": 1,
            "secondsSinceFailure": 2.0,
            "disabled": False,
        }
    ]


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        HealthTracker(failure_threshold=0)

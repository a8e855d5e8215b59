import asyncio

import pytest

from evm_mcp.chains import CHAIN_INFO, SUPPORTED_CHAINS
from evm_mcp.evm_api import ClientManager
from evm_mcp.evm_api.errors import (
    EndpointUnreachableError,
    ManagerNotInitializedError,
    NoHealthyEndpointError,
    UnsupportedChainError,
)
from evm_mcp.evm_api.health import CircuitState


def _two_endpoints(chain="ethereum", chain_id=11155111):
    return {
        chain: [
            {"url": "https://a.test", "expectedChainId": chain_id, "priority": 10},
            {"url": "https://b.test", "expectedChainId": chain_id, "priority": 0},
        ]
    }


@pytest.mark.asyncio
async def test_every_chain_reports_expected_chain_id(make_manager):
    manager = make_manager()
    for chain in SUPPORTED_CHAINS:
        connection = await manager.get_provider(chain)
        assert await connection.get_chain_id() == CHAIN_INFO[connection.endpoint.chain_key].chain_id
        assert connection.endpoint.chain_key == chain


@pytest.mark.asyncio
async def test_second_call_returns_cached_connection(make_manager, stub_factory):
    factory = stub_factory()
    manager = make_manager(factory=factory)
    first = await manager.get_provider("polygon")
    second = await manager.get_provider("polygon")
    assert first is second
    assert len(factory.created) == 1
    assert first.chain_id_calls == 1


@pytest.mark.asyncio
async def test_unknown_chain_no_network(make_manager, stub_factory):
    factory = stub_factory()
    manager = make_manager(factory=factory)
    with pytest.raises(UnsupportedChainError):
        await manager.get_provider("unknown-chain")
    assert factory.created == []


@pytest.mark.asyncio
async def test_mismatched_endpoint_is_skipped(make_manager, endpoint_table, stub_factory):
    factory = stub_factory(results={"https://a.test": 1})
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory)

    connection = await manager.get_provider("ethereum")
    assert connection.endpoint.url == "https://b.test"
    assert factory.urls == ["https://a.test", "https://b.test"]
    assert factory.created[0].closed

    endpoint_a = manager.registry.resolve("ethereum")[0]
    state_a = manager.tracker.state(endpoint_a)
    assert state_a.consecutive_failures == 1
    assert state_a.disabled

    # A mismatched endpoint is not retried, even after a later invalidation.
    await manager.report_failure("ethereum")
    await manager.get_provider("ethereum")
    assert factory.urls == ["https://a.test", "https://b.test", "https://b.test"]


@pytest.mark.asyncio
async def test_only_endpoint_mismatched_raises_no_healthy(make_manager, stub_factory):
    factory = stub_factory(results={"https://ethereum-primary.test/rpc": 1})
    manager = make_manager(factory=factory)
    with pytest.raises(NoHealthyEndpointError) as excinfo:
        await manager.get_provider("ethereum")
    assert excinfo.value.tried == 1
    assert "ethereum" in str(excinfo.value)
    assert "https://" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_failover_on_unreachable_primary(make_manager, endpoint_table, stub_factory):
    factory = stub_factory(results={"https://a.test": EndpointUnreachableError("down")})
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory)

    connection = await manager.get_provider("ethereum")
    assert connection.endpoint.url == "https://b.test"
    endpoint_a = manager.registry.resolve("ethereum")[0]
    assert manager.tracker.state(endpoint_a).consecutive_failures == 1
    assert manager.tracker.state(endpoint_a).state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_attempt_timeout_triggers_failover(make_manager, endpoint_table, stub_factory):
    factory = stub_factory(delays={"https://a.test": 5.0})
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory, timeout=0.05)

    connection = await asyncio.wait_for(manager.get_provider("ethereum"), timeout=1.0)
    assert connection.endpoint.url == "https://b.test"
    assert factory.created[0].closed


@pytest.mark.asyncio
async def test_all_endpoints_failing(make_manager, endpoint_table, stub_factory):
    factory = stub_factory(
        results={
            "https://a.test": EndpointUnreachableError("down"),
            "https://b.test": EndpointUnreachableError("down"),
        }
    )
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory)
    with pytest.raises(NoHealthyEndpointError) as excinfo:
        await manager.get_provider("ethereum")
    assert excinfo.value.tried == 2
    assert isinstance(excinfo.value.__cause__, EndpointUnreachableError)
    assert "ethereum" in manager.last_errors()


@pytest.mark.asyncio
async def test_reported_failures_open_circuit_and_fail_over(make_manager, endpoint_table, stub_factory):
    factory = stub_factory()
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory, threshold=3)

    first = await manager.get_provider("ethereum")
    assert first.endpoint.url == "https://a.test"
    for _ in range(3):
        await manager.report_failure("ethereum")
    assert first.closed

    endpoint_a = manager.registry.resolve("ethereum")[0]
    assert manager.tracker.state(endpoint_a).state is CircuitState.OPEN

    second = await manager.get_provider("ethereum")
    assert second.endpoint.url == "https://b.test"
    assert factory.urls == ["https://a.test", "https://b.test"]


@pytest.mark.asyncio
async def test_reported_failures_without_fallback_raise(make_manager, stub_factory, fake_clock):
    factory = stub_factory()
    manager = make_manager(factory=factory, clock=fake_clock, threshold=3, cooldown=30.0)

    await manager.get_provider("bsc")
    for _ in range(3):
        await manager.report_failure("bsc")

    with pytest.raises(NoHealthyEndpointError) as excinfo:
        await manager.get_provider("bsc")
    assert excinfo.value.tried == 0
    assert len(factory.created) == 1


@pytest.mark.asyncio
async def test_half_open_probe_after_cooldown(make_manager, stub_factory, fake_clock):
    factory = stub_factory()
    manager = make_manager(factory=factory, clock=fake_clock, threshold=3, cooldown=30.0)

    await manager.get_provider("base")
    for _ in range(3):
        await manager.report_failure("base")
    endpoint = manager.registry.resolve("base")[0]
    assert manager.tracker.state(endpoint).consecutive_failures == 3

    fake_clock.advance(31)
    connection = await manager.get_provider("base")
    assert connection.endpoint == endpoint
    state = manager.tracker.state(endpoint)
    assert state.state is CircuitState.CLOSED
    assert state.consecutive_failures == 0


@pytest.mark.asyncio
async def test_concurrent_first_access_single_attempt(make_manager, stub_factory):
    factory = stub_factory(default_delay=0.02)
    manager = make_manager(factory=factory)

    results = await asyncio.gather(*(manager.get_provider("avalanche") for _ in range(50)))
    assert len(factory.created) == 1
    assert all(result is results[0] for result in results)


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_failed_attempt(make_manager, stub_factory):
    factory = stub_factory(delays={"https://ethereum-primary.test/rpc": 5.0})
    manager = make_manager(factory=factory, threshold=3, timeout=0.2)
    loop = asyncio.get_running_loop()

    started = loop.time()
    results = await asyncio.gather(
        *(manager.get_provider("ethereum") for _ in range(10)), return_exceptions=True
    )
    elapsed = loop.time() - started

    assert len(factory.created) == 1
    assert all(isinstance(result, NoHealthyEndpointError) for result in results)
    assert [result.tried for result in results] == [1] * 10
    assert elapsed < 0.5
    endpoint = manager.registry.resolve("ethereum")[0]
    assert manager.tracker.state(endpoint).consecutive_failures == 1


@pytest.mark.asyncio
async def test_slow_chain_does_not_block_other_chains(make_manager, stub_factory):
    factory = stub_factory(delays={"https://ethereum-primary.test/rpc": 0.5})
    manager = make_manager(factory=factory)

    slow = asyncio.ensure_future(manager.get_provider("ethereum"))
    await asyncio.sleep(0)
    fast = await asyncio.wait_for(manager.get_provider("arbitrum"), timeout=0.2)
    assert fast.endpoint.chain_key == "arbitrum"
    assert not slow.done()
    await slow


@pytest.mark.asyncio
async def test_abandoned_caller_still_populates_cache(make_manager, stub_factory):
    factory = stub_factory(default_delay=0.05)
    manager = make_manager(factory=factory)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(manager.get_provider("worldchain"), timeout=0.01)

    await asyncio.sleep(0.1)
    connection = await manager.get_provider("worldchain")
    assert len(factory.created) == 1
    assert connection is factory.created[0]


@pytest.mark.asyncio
async def test_stale_failure_report_keeps_current_connection(make_manager, endpoint_table, stub_factory):
    factory = stub_factory()
    manager = make_manager(endpoint_table(_two_endpoints()), factory=factory, threshold=5)

    old = await manager.get_provider("ethereum")
    await manager.report_failure("ethereum", old)
    current = await manager.get_provider("ethereum")
    assert current is not old

    await manager.report_failure("ethereum", old)
    assert await manager.get_provider("ethereum") is current
    assert not current.closed


@pytest.mark.asyncio
async def test_init_is_idempotent(make_manager):
    manager = make_manager()
    registry = manager.registry
    manager.init({"ethereum": []})
    assert manager.registry is registry


@pytest.mark.asyncio
async def test_get_provider_requires_init():
    manager = ClientManager()
    with pytest.raises(ManagerNotInitializedError):
        await manager.get_provider("ethereum")
    assert manager.status() == {"initialized": False, "chains": {}, "endpoints": []}


@pytest.mark.asyncio
async def test_shutdown_closes_connections_and_clears_health(make_manager, stub_factory, endpoint_table):
    factory = stub_factory()
    table = endpoint_table()
    manager = make_manager(table, factory=factory)
    connection = await manager.get_provider("ethereum")
    await manager.report_failure("polygon")

    await manager.shutdown()
    assert connection.closed
    assert not manager.initialized
    with pytest.raises(ManagerNotInitializedError):
        await manager.get_provider("ethereum")

    manager.init(table)
    assert manager.tracker.snapshot() == []
    assert await manager.get_provider("ethereum") is not connection


@pytest.mark.asyncio
async def test_status_reports_cache_and_endpoints(make_manager, fake_clock):
    manager = make_manager(clock=fake_clock)
    await manager.get_provider("ethereum")
    fake_clock.advance(5)
    status = manager.status()
    assert status["initialized"] is True
    eth = status["chains"]["ethereum"]
    assert eth["connected"] is True
    assert eth["endpoint"] == "https://ethereum-primary.test"
    assert eth["ageSeconds"] == 5.0
    assert status["chains"]["polygon"]["connected"] is False
    assert status["endpoints"][0]["state"] == "CLOSED"


@pytest.mark.asyncio
async def test_test_connection_and_all(make_manager, stub_factory):
    factory = stub_factory(results={"https://bsc-primary.test/rpc": EndpointUnreachableError("down")})
    manager = make_manager(factory=factory)
    assert await manager.test_connection("ethereum") is True
    results = await manager.test_all_connections()
    assert results["bsc"] is False
    assert results["ethereum"] is True
    assert set(results) == set(SUPPORTED_CHAINS)


def test_chain_metadata_helpers():
    manager = ClientManager()
    assert manager.is_chain_supported("polygon")
    assert not manager.is_chain_supported("solana")
    assert manager.chain_info("ethereum").chain_id == 11155111
    assert (
        manager.explorer_url("ethereum", "0x000000000000000000000000000000000000dEaD")
        == "https://sepolia.etherscan.io/address/0x000000000000000000000000000000000000dEaD"
    )
    assert manager.transaction_explorer_url("base", "0xabc") == "https://sepolia.basescan.org/tx/0xabc"
    with pytest.raises(UnsupportedChainError):
        manager.chain_info("solana")

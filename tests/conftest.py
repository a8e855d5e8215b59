import asyncio
import os
import sys

import pytest
import pytest_asyncio

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from evm_mcp.chains import CHAIN_INFO  # noqa: E402
from evm_mcp.config import EvmConfig  # noqa: E402
from evm_mcp.evm_api import ClientManager  # noqa: E402
from evm_mcp.metrics import MetricsRecorder, default_metrics  # noqa: E402


CHAIN_IDS = {key.value: info.chain_id for key, info in CHAIN_INFO.items()}


def build_table(overrides=None):
    """One healthy endpoint per supported chain, with optional per-chain overrides."""
    table = {
        chain: [{"url": f"https://{chain}-primary.test/rpc", "expectedChainId": chain_id}]
        for chain, chain_id in CHAIN_IDS.items()
    }
    table.update(overrides or {})
    return table


class StubConnection:
    def __init__(self, endpoint, result, *, delay=0.0, block_number=100):
        self.endpoint = endpoint
        self._result = result
        self._delay = delay
        self._block_number = block_number
        self.closed = False
        self.chain_id_calls = 0

    async def get_chain_id(self):
        self.chain_id_calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result

    async def get_block_number(self):
        return self._block_number

    async def aclose(self):
        self.closed = True


class StubFactory:
    """
    Connection factory keyed by endpoint URL.

    ``results`` maps URL -> chain id to report or exception to raise; URLs not
    listed report their expected chain id. ``delays`` maps URL -> seconds.
    """

    def __init__(self, results=None, delays=None, default_delay=0.0):
        self.results = results or {}
        self.delays = delays or {}
        self.default_delay = default_delay
        self.created = []

    def __call__(self, endpoint):
        result = self.results.get(endpoint.url, endpoint.expected_chain_id)
        delay = self.delays.get(endpoint.url, self.default_delay)
        connection = StubConnection(endpoint, result, delay=delay)
        self.created.append(connection)
        return connection

    @property
    def urls(self):
        return [connection.endpoint.url for connection in self.created]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


@pytest.fixture
def endpoint_table():
    return build_table


@pytest.fixture
def stub_factory():
    return StubFactory


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest_asyncio.fixture
async def make_manager():
    managers = []

    def _make(table=None, *, factory=None, clock=None, threshold=3, cooldown=30.0, timeout=1.0):
        config = EvmConfig(
            timeout=timeout,
            failure_threshold=threshold,
            cooldown_seconds=cooldown,
            endpoints=table if table is not None else build_table(),
        )
        manager = ClientManager(
            config,
            connection_factory=factory if factory is not None else StubFactory(),
            clock=clock if clock is not None else FakeClock(),
            metrics=MetricsRecorder(),
        )
        manager.init()
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        await manager.shutdown()

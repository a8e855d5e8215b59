"""Multi-chain RPC connection management."""

from .connection import RpcConnection, hex_to_int
from .errors import (
    NETWORK_ERRORS,
    ChainIdMismatchError,
    ConnectionTimeoutError,
    EndpointUnreachableError,
    EvmApiError,
    ManagerNotInitializedError,
    NoHealthyEndpointError,
    RegistryConfigError,
    RpcError,
    UnsupportedChainError,
)
from .health import CircuitState, HealthState, HealthTracker
from .manager import ClientManager, default_manager
from .pool import ConnectionPool
from .registry import EndpointDescriptor, EndpointRegistry

__all__ = [
    "ClientManager",
    "default_manager",
    "ConnectionPool",
    "EndpointDescriptor",
    "EndpointRegistry",
    "HealthTracker",
    "HealthState",
    "CircuitState",
    "RpcConnection",
    "hex_to_int",
    "EvmApiError",
    "UnsupportedChainError",
    "NoHealthyEndpointError",
    "ChainIdMismatchError",
    "ConnectionTimeoutError",
    "EndpointUnreachableError",
    "RpcError",
    "RegistryConfigError",
    "ManagerNotInitializedError",
    "NETWORK_ERRORS",
]

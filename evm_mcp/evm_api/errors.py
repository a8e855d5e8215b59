"""Exception hierarchy for the multi-chain connection manager."""

from __future__ import annotations

from typing import Optional


class EvmApiError(Exception):
    """Base exception for RPC and connection-management errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str | int] = None,
        chain: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.chain = chain


class UnsupportedChainError(EvmApiError):
    """Raised for a chain key outside the supported set."""

    def __init__(self, chain: str, supported: Optional[list[str]] = None) -> None:
        message = f"Unsupported chain: {chain}."
        if supported:
            message = f"{message} Supported chains: {', '.join(supported)}"
        super().__init__(message, code="UNSUPPORTED_CHAIN", chain=chain)


class NoHealthyEndpointError(EvmApiError):
    """Raised when every endpoint for a chain is circuit-open or failing."""

    def __init__(self, chain: str, tried: int) -> None:
        super().__init__(
            f"No healthy RPC endpoint for {chain} ({tried} tried).",
            code="NO_HEALTHY_ENDPOINT",
            chain=chain,
        )
        self.tried = tried


class ChainIdMismatchError(EvmApiError):
    """Raised when an endpoint reports a different network than configured."""

    def __init__(self, chain: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Endpoint for {chain} reported chain id {actual}, expected {expected}.",
            code="CHAIN_ID_MISMATCH",
            chain=chain,
        )
        self.expected = expected
        self.actual = actual


class ConnectionTimeoutError(EvmApiError):
    """Raised when an endpoint does not answer within the per-attempt timeout."""


class EndpointUnreachableError(EvmApiError):
    """Raised when an endpoint cannot be reached at the transport level."""


class RpcError(EvmApiError):
    """Raised for JSON-RPC error objects or malformed responses."""


class RegistryConfigError(EvmApiError, ValueError):
    """Raised when the endpoint table is invalid."""


class ManagerNotInitializedError(EvmApiError):
    """Raised when the client manager is used before init()."""


NETWORK_ERRORS = (ConnectionTimeoutError, EndpointUnreachableError)

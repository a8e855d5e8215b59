"""Static mapping from chain key to candidate RPC endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple
from urllib.parse import urlsplit

from evm_mcp.chains import SUPPORTED_CHAINS, ChainKey, parse_chain_key
from evm_mcp.evm_api.errors import RegistryConfigError, UnsupportedChainError


@dataclass(frozen=True, slots=True)
class EndpointDescriptor:
    url: str
    chain_key: str
    expected_chain_id: int
    priority: int = 0

    @property
    def redacted_url(self) -> str:
        """Scheme and host only; paths and query strings often carry API keys."""
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}"


def _coerce_int(value: Any, *, field_name: str, chain: str) -> int:
    if isinstance(value, bool):
        raise RegistryConfigError(f"{field_name} for {chain} must be an integer", chain=chain)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            pass
    raise RegistryConfigError(f"{field_name} for {chain} must be an integer", chain=chain)


def _build_descriptor(chain: str, raw: Any) -> EndpointDescriptor:
    if isinstance(raw, str):
        raise RegistryConfigError(
            f"Endpoint for {chain} must be an object with url and expectedChainId",
            chain=chain,
        )
    if not isinstance(raw, Mapping):
        raise RegistryConfigError(f"Invalid endpoint entry for {chain}", chain=chain)

    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        raise RegistryConfigError(f"Endpoint for {chain} is missing url", chain=chain)
    url = url.strip()
    if urlsplit(url).scheme not in {"http", "https"} or not urlsplit(url).netloc:
        raise RegistryConfigError(f"Endpoint url for {chain} must be http(s)", chain=chain)

    expected = raw.get("expectedChainId", raw.get("expected_chain_id"))
    if expected is None:
        raise RegistryConfigError(f"Endpoint for {chain} is missing expectedChainId", chain=chain)

    return EndpointDescriptor(
        url=url,
        chain_key=chain,
        expected_chain_id=_coerce_int(expected, field_name="expectedChainId", chain=chain),
        priority=_coerce_int(raw.get("priority", 0), field_name="priority", chain=chain),
    )


class EndpointRegistry:
    """Read-only lookup of endpoints per supported chain, highest priority first."""

    def __init__(self, endpoints: Mapping[str, Sequence[EndpointDescriptor]]) -> None:
        ordered: Dict[str, Tuple[EndpointDescriptor, ...]] = {}
        for chain in SUPPORTED_CHAINS:
            descriptors = list(endpoints.get(chain) or ())
            if not descriptors:
                raise RegistryConfigError(f"No RPC endpoint configured for {chain}", chain=chain)
            # sorted() is stable, so equal priorities keep configuration order.
            ordered[chain] = tuple(sorted(descriptors, key=lambda d: -d.priority))
        self._endpoints = ordered

    @classmethod
    def from_table(cls, table: Mapping[str, Any]) -> "EndpointRegistry":
        """Validate a raw ``{chain: [{url, expectedChainId, priority}]}`` table."""
        endpoints: Dict[str, List[EndpointDescriptor]] = {}
        for raw_chain, raw_entries in table.items():
            key = parse_chain_key(raw_chain)
            if key is None:
                raise RegistryConfigError(f"Unknown chain in endpoint table: {raw_chain}")
            if isinstance(raw_entries, Mapping):
                raw_entries = [raw_entries]
            if not isinstance(raw_entries, (list, tuple)):
                raise RegistryConfigError(f"Endpoints for {key.value} must be a list", chain=key.value)
            endpoints.setdefault(key.value, []).extend(
                _build_descriptor(key.value, raw) for raw in raw_entries
            )
        return cls(endpoints)

    def resolve(self, chain_key: ChainKey | str) -> Tuple[EndpointDescriptor, ...]:
        key = parse_chain_key(chain_key)
        if key is None:
            raise UnsupportedChainError(str(chain_key), SUPPORTED_CHAINS)
        return self._endpoints[key.value]

    def chains(self) -> List[str]:
        return list(self._endpoints)

    def endpoint_count(self, chain_key: ChainKey | str) -> int:
        return len(self.resolve(chain_key))

    def all_endpoints(self) -> List[EndpointDescriptor]:
        return [descriptor for group in self._endpoints.values() for descriptor in group]

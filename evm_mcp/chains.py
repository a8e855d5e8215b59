"""Supported EVM chain definitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class ChainKey(str, Enum):
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    AVALANCHE = "avalanche"
    BSC = "bsc"
    ARBITRUM = "arbitrum"
    BASE = "base"
    WORLDCHAIN = "worldchain"


@dataclass(frozen=True, slots=True)
class ChainInfo:
    """Static metadata for a supported chain."""

    key: ChainKey
    name: str
    chain_id: int
    native_token: str
    explorer: str
    testnet: bool
    default_rpc_url: str

    @property
    def rpc_env_var(self) -> str:
        return f"{self.key.value.upper()}_RPC_URL"

    @property
    def fallback_env_var(self) -> str:
        return f"{self.key.value.upper()}_RPC_FALLBACK_URLS"


CHAIN_INFO: Dict[ChainKey, ChainInfo] = {
    ChainKey.ETHEREUM: ChainInfo(
        key=ChainKey.ETHEREUM,
        name="Ethereum Sepolia",
        chain_id=11155111,
        native_token="ETH",
        explorer="https://sepolia.etherscan.io",
        testnet=True,
        default_rpc_url="https://eth-sepolia.public.blastapi.io",
    ),
    ChainKey.POLYGON: ChainInfo(
        key=ChainKey.POLYGON,
        name="Polygon Amoy",
        chain_id=80002,
        native_token="POL",
        explorer="https://amoy.polygonscan.com",
        testnet=True,
        default_rpc_url="https://rpc-amoy.polygon.technology",
    ),
    ChainKey.AVALANCHE: ChainInfo(
        key=ChainKey.AVALANCHE,
        name="Avalanche Fuji",
        chain_id=43113,
        native_token="AVAX",
        explorer="https://testnet.snowtrace.io",
        testnet=True,
        default_rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
    ),
    ChainKey.BSC: ChainInfo(
        key=ChainKey.BSC,
        name="BSC Testnet",
        chain_id=97,
        native_token="BNB",
        explorer="https://testnet.bscscan.com",
        testnet=True,
        default_rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545",
    ),
    ChainKey.ARBITRUM: ChainInfo(
        key=ChainKey.ARBITRUM,
        name="Arbitrum Sepolia",
        chain_id=421614,
        native_token="ETH",
        explorer="https://sepolia.arbiscan.io",
        testnet=True,
        default_rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
    ),
    ChainKey.BASE: ChainInfo(
        key=ChainKey.BASE,
        name="Base Sepolia",
        chain_id=84532,
        native_token="ETH",
        explorer="https://sepolia.basescan.org",
        testnet=True,
        default_rpc_url="https://sepolia.base.org",
    ),
    ChainKey.WORLDCHAIN: ChainInfo(
        key=ChainKey.WORLDCHAIN,
        name="Worldchain Testnet",
        chain_id=4801,
        native_token="WLD",
        explorer="https://worldchain-sepolia.explorer.alchemy.com",
        testnet=True,
        default_rpc_url="https://worldchain-sepolia.g.alchemy.com/public",
    ),
}

SUPPORTED_CHAINS: List[str] = [key.value for key in ChainKey]


def parse_chain_key(value: object) -> Optional[ChainKey]:
    """Return the ChainKey for ``value`` or None when it is not supported."""
    if isinstance(value, ChainKey):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ChainKey(value.strip().lower())
    except ValueError:
        return None


def get_chain_info(chain: ChainKey | str) -> Optional[ChainInfo]:
    key = parse_chain_key(chain)
    if key is None:
        return None
    return CHAIN_INFO[key]

"""Known EVM networks, looked up by chain id to label sessions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChainConfig:
    """Display metadata for a known EVM network."""

    chain_id: int
    name: str
    short_name: str
    native_currency: str = "ETH"
    is_testnet: bool = False


# ── Chain Registry ───────────────────────────────────────────────────────────

CHAINS: dict[int, ChainConfig] = {
    50312: ChainConfig(
        chain_id=50312,
        name="Somnia Testnet",
        short_name="somnia-testnet",
        native_currency="STT",
        is_testnet=True,
    ),
    5031: ChainConfig(
        chain_id=5031,
        name="Somnia Mainnet",
        short_name="somnia",
        native_currency="SOMI",
    ),
    1: ChainConfig(
        chain_id=1,
        name="Ethereum Mainnet",
        short_name="eth",
    ),
    11155111: ChainConfig(
        chain_id=11155111,
        name="Sepolia Testnet",
        short_name="sepolia",
        is_testnet=True,
    ),
    137: ChainConfig(
        chain_id=137,
        name="Polygon Mainnet",
        short_name="matic",
        native_currency="POL",
    ),
    42161: ChainConfig(
        chain_id=42161,
        name="Arbitrum One",
        short_name="arb",
    ),
    10: ChainConfig(
        chain_id=10,
        name="Optimism",
        short_name="op",
    ),
    8453: ChainConfig(
        chain_id=8453,
        name="Base",
        short_name="base",
    ),
    31337: ChainConfig(
        chain_id=31337,
        name="Local Devnet",
        short_name="local",
        is_testnet=True,
    ),
}


def get_chain_config(chain_id: int) -> ChainConfig | None:
    """Get chain configuration by chain id."""
    return CHAINS.get(chain_id)


def network_name(chain_id: int) -> str:
    """Human-readable network name, falling back to the raw id."""
    chain = CHAINS.get(chain_id)
    return chain.name if chain else f"Unknown (chain ID {chain_id})"

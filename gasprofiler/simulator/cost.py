"""Monetary cost of measured gas, in integer wei."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from gasprofiler.core.config import get_settings
from gasprofiler.ingestion.rpc import NetworkHandle

logger = logging.getLogger(__name__)

UNIT_DECIMALS = 18


def format_wei(wei: int, places: int) -> str:
    """Wei as a fixed-precision decimal string in whole native units."""
    quantum = Decimal(1).scaleb(-places)
    value = Decimal(wei).scaleb(-UNIT_DECIMALS).quantize(quantum, rounding=ROUND_HALF_UP)
    return f"{value:.{places}f}"


class CostCalculator:
    """Fetches the unit gas price and turns gas into wei and display strings.

    Arithmetic stays in integers; ``Decimal`` is only used for formatting.
    A missing price yields ``None`` everywhere so callers can tell "no data"
    apart from "free".
    """

    def __init__(self, network: NetworkHandle, places: int | None = None) -> None:
        self._network = network
        self.places = places if places is not None else get_settings().cost_display_places

    async def fetch_unit_price(self) -> int | None:
        try:
            return await self._network.gas_price()
        except Exception as exc:
            logger.warning("Gas price unavailable, cost will be omitted: %s", exc)
            return None

    @staticmethod
    def cost_wei(gas_used: int, unit_price: int | None) -> int | None:
        if unit_price is None:
            return None
        return gas_used * unit_price

    def format_cost(self, wei: int | None) -> str | None:
        if wei is None:
            return None
        return format_wei(wei, self.places)

    def price(self, gas_used: int, unit_price: int | None) -> tuple[int | None, str | None]:
        wei = self.cost_wei(gas_used, unit_price)
        return wei, self.format_cost(wei)

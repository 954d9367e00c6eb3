"""Tests for gasprofiler.simulator.cost."""

from __future__ import annotations

import pytest

from gasprofiler.core.errors import RPCError
from gasprofiler.simulator.cost import CostCalculator, format_wei


class TestFormatWei:
    @pytest.mark.parametrize(
        "wei,places,expected",
        [
            (0, 6, "0.000000"),
            (10**18, 6, "1.000000"),
            (2334 * 10**9, 9, "0.000002334"),
            (2334 * 10**9, 6, "0.000002"),
            (1_500_000_000_000, 6, "0.000002"),
            (1_499_999_999_999, 6, "0.000001"),
            (123_456_789 * 10**18, 2, "123456789.00"),
        ],
    )
    def test_rounding(self, wei, places, expected):
        assert format_wei(wei, places) == expected


class TestCostCalculator:
    @pytest.mark.asyncio
    async def test_fetch_unit_price(self, network):
        network.price = 25 * 10**9
        assert await CostCalculator(network, places=6).fetch_unit_price() == 25 * 10**9

    @pytest.mark.asyncio
    async def test_missing_price_is_none(self, network):
        network.price = RPCError("method eth_gasPrice not supported")
        assert await CostCalculator(network, places=6).fetch_unit_price() is None

    def test_cost_is_exact_integer(self):
        assert CostCalculator.cost_wei(2334, 10**9) == 2_334_000_000_000
        assert CostCalculator.cost_wei(2334, None) is None

    def test_price_pairs_wei_and_display(self, network):
        calc = CostCalculator(network, places=9)
        assert calc.price(21_000, 10**9) == (21_000 * 10**9, "0.000021000")
        assert calc.price(21_000, None) == (None, None)

    def test_huge_values_do_not_lose_precision(self, network):
        calc = CostCalculator(network, places=18)
        wei = CostCalculator.cost_wei(30_000_000, 10**15 + 1)
        assert wei == 30_000_000 * (10**15 + 1)
        assert calc.format_cost(wei) == "30000.000000000030000000"

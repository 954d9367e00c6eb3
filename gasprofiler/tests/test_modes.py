"""Tests for gasprofiler.simulator.modes: mode selection and the registry."""

from __future__ import annotations

import pytest

from gasprofiler.core.errors import UnsupportedModeError
from gasprofiler.core.types import SimulationMode, StateMutability
from gasprofiler.simulator.executors import EstimateExecutor, TraceExecutor
from gasprofiler.simulator.modes import (
    FALLBACK_ORDER,
    NOMINAL_CONFIDENCE,
    ModeRegistry,
    build_default_registry,
    select_mode,
)


class TestSelectMode:
    @pytest.mark.parametrize("mutability", [StateMutability.VIEW, StateMutability.PURE])
    @pytest.mark.parametrize("params", [0, 1, 3, 4, 9])
    def test_read_only_always_static_call(self, mutability, params):
        assert select_mode(mutability, params) == SimulationMode.STATIC_CALL

    @pytest.mark.parametrize("mutability", [StateMutability.NONPAYABLE, StateMutability.PAYABLE])
    @pytest.mark.parametrize("params", [0, 1, 2, 3])
    def test_state_changing_few_params_estimate(self, mutability, params):
        assert select_mode(mutability, params) == SimulationMode.ESTIMATE

    def test_many_params_trace(self):
        assert select_mode(StateMutability.NONPAYABLE, 4) == SimulationMode.TRACE
        assert select_mode(StateMutability.PAYABLE, 7) == SimulationMode.TRACE


class TestRegistry:
    def test_lookup_registered(self, network):
        executor = EstimateExecutor(network)
        registry = ModeRegistry([executor])
        assert registry.get(SimulationMode.ESTIMATE) is executor
        assert SimulationMode.ESTIMATE in registry

    def test_missing_mode_raises(self, network):
        registry = ModeRegistry([EstimateExecutor(network)])
        with pytest.raises(UnsupportedModeError, match="trace"):
            registry.get(SimulationMode.TRACE)

    def test_register_replaces(self, network):
        registry = ModeRegistry([TraceExecutor(network)])
        replacement = TraceExecutor(network)
        registry.register(replacement)
        assert registry.get(SimulationMode.TRACE) is replacement
        assert registry.modes == [SimulationMode.TRACE]

    def test_default_registry_covers_every_strategy(self, network, settings):
        registry = build_default_registry(network, settings)
        expected = {
            SimulationMode.ESTIMATE,
            SimulationMode.STATIC_CALL,
            SimulationMode.TRACE,
            SimulationMode.DEBUG_MULTI,
            SimulationMode.SPONSORED,
            SimulationMode.BYTECODE_HEURISTIC,
            SimulationMode.ACCESS_CONTROL_BYPASS,
            SimulationMode.MULTI_SENDER,
        }
        assert set(registry.modes) == expected
        assert SimulationMode.AUTO not in registry

    def test_fallback_order_is_fixed(self):
        assert FALLBACK_ORDER == (
            SimulationMode.ESTIMATE,
            SimulationMode.STATIC_CALL,
            SimulationMode.TRACE,
            SimulationMode.BYTECODE_HEURISTIC,
        )

    def test_nominal_confidence_bounds(self):
        assert NOMINAL_CONFIDENCE[SimulationMode.BYTECODE_HEURISTIC] == 30
        assert NOMINAL_CONFIDENCE[SimulationMode.CONSERVATIVE] <= 10
        assert all(0 <= c <= 100 for c in NOMINAL_CONFIDENCE.values())

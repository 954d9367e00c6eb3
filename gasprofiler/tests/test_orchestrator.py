"""Tests for the fallback orchestrator (gasprofiler/simulator/orchestrator.py)."""

from __future__ import annotations

import asyncio

import pytest

from gasprofiler.core.config import Settings
from gasprofiler.core.errors import AllStrategiesExhaustedError, RPCError, StrategyError
from gasprofiler.core.types import MeasurementResult, SimulationMode
from gasprofiler.ingestion.advisor import COMMON_TEST_SENDERS
from gasprofiler.simulator.cache import ResultCache
from gasprofiler.simulator.executors import SimulationRequest, StrategyExecutor
from gasprofiler.simulator.modes import ModeRegistry, build_default_registry
from gasprofiler.simulator.orchestrator import (
    CONSERVATIVE_CONFIDENCE,
    FallbackOrchestrator,
    OrchestratorState,
    is_permission_error,
)

COMMON_SENDER_ONE = COMMON_TEST_SENDERS[0]


# ── Scripted executors ───────────────────────────────────────────────────


class ScriptedExecutor(StrategyExecutor):
    """Executor that returns a fixed gas figure or raises a fixed error."""

    def __init__(self, mode: SimulationMode, gas: int | None = None, error: str = "", confidence: int = 95):
        super().__init__(network=None)  # type: ignore[arg-type]
        self.mode = mode
        self.confidence = confidence
        self._gas = gas
        self._error = error
        self.invocations = 0

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        self.invocations += 1
        if self._gas is None:
            raise StrategyError(self._error or f"{self.mode.value} failed")
        return MeasurementResult(
            success=True,
            gas_used=self._gas,
            base_gas=self._gas,
            confidence=self.confidence,
            mode=self.mode,
        )


class HangingExecutor(ScriptedExecutor):
    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        self.invocations += 1
        await asyncio.sleep(10)
        raise AssertionError("unreachable")


def registry_of(*executors: StrategyExecutor) -> ModeRegistry:
    return ModeRegistry(executors)


@pytest.fixture
def failing_chain():
    """Estimate, static call and trace fail; bytecode heuristic succeeds."""
    return registry_of(
        ScriptedExecutor(SimulationMode.ESTIMATE, error="execution reverted"),
        ScriptedExecutor(SimulationMode.STATIC_CALL, error="Function would revert"),
        ScriptedExecutor(SimulationMode.TRACE, error="Tracing not supported"),
        ScriptedExecutor(SimulationMode.BYTECODE_HEURISTIC, gas=56_000, confidence=30),
    )


# ── Success paths ────────────────────────────────────────────────────────


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_primary_success(self, network, make_request, settings):
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), settings=settings)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.ESTIMATE
        assert result.used_fallback is False
        assert [a.mode for a in result.attempts] == [SimulationMode.ESTIMATE]
        assert result.failed_attempts == ()

    @pytest.mark.asyncio
    async def test_trace_after_estimate_and_static_call_fail(self, network, make_request, settings):
        network.estimate_result = RPCError("execution reverted", rpc_code=3)
        network.call_result = RPCError("execution reverted", rpc_code=3)
        network.trace_result = {"type": "CALL", "gasUsed": hex(41_000), "calls": []}
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), settings=settings)

        result = await orchestrator.simulate(make_request("set"))

        assert result.mode == SimulationMode.TRACE
        assert result.gas_used == 41_000
        assert result.used_fallback is True
        assert [a.mode for a in result.failed_attempts] == [SimulationMode.ESTIMATE, SimulationMode.STATIC_CALL]
        assert all(a.error for a in result.failed_attempts)
        assert result.attempts[0].mode == SimulationMode.ESTIMATE
        assert result.attempts[-1].mode == SimulationMode.TRACE
        assert result.attempts[-1].error is None

    @pytest.mark.asyncio
    async def test_already_tried_modes_are_skipped(self, make_request, failing_chain, settings):
        orchestrator = FallbackOrchestrator(failing_chain, settings=settings)
        result = await orchestrator.simulate(make_request("set"), mode=SimulationMode.TRACE)
        modes = [a.mode for a in result.attempts]
        assert modes == [
            SimulationMode.TRACE,
            SimulationMode.ESTIMATE,
            SimulationMode.STATIC_CALL,
            SimulationMode.BYTECODE_HEURISTIC,
        ]
        assert len(modes) == len(set(modes))
        assert failing_chain.get(SimulationMode.TRACE).invocations == 1

    @pytest.mark.asyncio
    async def test_view_function_starts_with_static_call(self, network, make_request, settings):
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), settings=settings)
        result = await orchestrator.simulate(make_request("get"))
        assert result.mode == SimulationMode.STATIC_CALL
        assert result.used_fallback is False

    @pytest.mark.asyncio
    async def test_confidence_never_rises_along_chain(self, make_request, settings):
        registry = registry_of(
            ScriptedExecutor(SimulationMode.TRACE, error="debug namespace disabled", confidence=90),
            ScriptedExecutor(SimulationMode.ESTIMATE, gas=30_000, confidence=95),
        )
        orchestrator = FallbackOrchestrator(registry, settings=settings)
        result = await orchestrator.simulate(make_request("set"), mode=SimulationMode.TRACE)
        assert result.mode == SimulationMode.ESTIMATE
        assert result.confidence == 90

    @pytest.mark.asyncio
    async def test_unregistered_mode_is_a_failed_attempt(self, make_request, settings):
        registry = registry_of(ScriptedExecutor(SimulationMode.STATIC_CALL, gas=21_500))
        orchestrator = FallbackOrchestrator(registry, settings=settings)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.STATIC_CALL
        assert "No executor registered" in result.attempts[0].error


# ── Access-control paths ─────────────────────────────────────────────────


class TestAccessControlPaths:
    @pytest.mark.asyncio
    async def test_inserted_before_bytecode_on_permission_error(self, make_request, settings):
        bypass = ScriptedExecutor(SimulationMode.ACCESS_CONTROL_BYPASS, gas=47_000, confidence=60)
        heuristic = ScriptedExecutor(SimulationMode.BYTECODE_HEURISTIC, gas=56_000, confidence=30)
        registry = registry_of(
            ScriptedExecutor(SimulationMode.ESTIMATE, error="execution reverted: Ownable: caller is not the owner"),
            ScriptedExecutor(SimulationMode.STATIC_CALL, error="Function would revert: caller is not the owner"),
            ScriptedExecutor(SimulationMode.TRACE, error="Tracing not supported"),
            bypass,
            ScriptedExecutor(SimulationMode.MULTI_SENDER, gas=48_000, confidence=70),
            heuristic,
        )
        orchestrator = FallbackOrchestrator(registry, settings=settings)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.ACCESS_CONTROL_BYPASS
        assert result.confidence == 60
        assert heuristic.invocations == 0

    @pytest.mark.asyncio
    async def test_not_attempted_without_permission_error(self, make_request, failing_chain, settings):
        bypass = ScriptedExecutor(SimulationMode.ACCESS_CONTROL_BYPASS, gas=47_000)
        failing_chain.register(bypass)
        orchestrator = FallbackOrchestrator(failing_chain, settings=settings)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.BYTECODE_HEURISTIC
        assert result.confidence == 30
        assert bypass.invocations == 0

    @pytest.mark.asyncio
    async def test_real_bypass_with_default_registry(self, network, make_request, settings):
        network.estimate_result = RPCError("execution reverted: Ownable: caller is not the owner")
        network.call_result = RPCError("execution reverted: Ownable: caller is not the owner")
        network.trace_result = RPCError("method not found", rpc_code=-32601)
        network.estimate_by_sender = {COMMON_SENDER_ONE.lower(): 52_000}
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), settings=settings)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.ACCESS_CONTROL_BYPASS
        assert result.exploratory is True
        assert result.sender == COMMON_SENDER_ONE
        assert result.gas_used == 52_000

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("execution reverted: Ownable: caller is not the owner", True),
            ("AccessControl: account 0x12 is missing role 0x00", True),
            ("Unauthorized()", True),
            ("execution reverted: insufficient balance", False),
            ("method not found", False),
        ],
    )
    def test_permission_detection(self, message, expected):
        assert is_permission_error(message) is expected


# ── Exhaustion ───────────────────────────────────────────────────────────


class TestExhaustion:
    @pytest.fixture
    def all_failing(self):
        return registry_of(
            ScriptedExecutor(SimulationMode.ESTIMATE),
            ScriptedExecutor(SimulationMode.STATIC_CALL),
            ScriptedExecutor(SimulationMode.TRACE),
            ScriptedExecutor(SimulationMode.BYTECODE_HEURISTIC),
        )

    @pytest.mark.asyncio
    async def test_simulated_call_gets_conservative_estimate(self, make_request, all_failing, settings):
        orchestrator = FallbackOrchestrator(all_failing, settings=settings)
        measurement = await orchestrator.measure(make_request("transfer", args=[COMMON_SENDER_ONE, 5]))
        result = measurement.result
        assert measurement.state == OrchestratorState.ALL_EXHAUSTED
        assert result.mode == SimulationMode.CONSERVATIVE
        assert result.confidence <= CONSERVATIVE_CONFIDENCE
        assert result.gas_used == 65_000
        assert result.success is False
        assert len(result.attempts) == 4
        assert all(a.failed for a in result.attempts)

    @pytest.mark.asyncio
    async def test_fee_paying_call_raises(self, make_request, all_failing, settings):
        orchestrator = FallbackOrchestrator(all_failing, settings=settings)
        with pytest.raises(AllStrategiesExhaustedError) as exc_info:
            await orchestrator.simulate(make_request("set", fee_paying=True))
        assert len(exc_info.value.attempts) == 4

    @pytest.mark.asyncio
    async def test_conservative_result_not_cached(self, make_request, all_failing, settings, clock):
        cache = ResultCache(ttl=300, max_entries=10, clock=clock)
        orchestrator = FallbackOrchestrator(all_failing, cache=cache, settings=settings)
        await orchestrator.simulate(make_request("set"))
        assert len(cache) == 0


# ── Deadlines ────────────────────────────────────────────────────────────


class TestAttemptDeadline:
    @pytest.mark.asyncio
    async def test_hung_attempt_falls_back(self, make_request, settings):
        registry = registry_of(
            HangingExecutor(SimulationMode.ESTIMATE),
            ScriptedExecutor(SimulationMode.STATIC_CALL, gas=26_000),
        )
        orchestrator = FallbackOrchestrator(registry, settings=settings, attempt_timeout=0.05)
        result = await orchestrator.simulate(make_request("set"))
        assert result.mode == SimulationMode.STATIC_CALL
        assert "timed out" in result.attempts[0].error

    @pytest.mark.asyncio
    async def test_hung_trace_keeps_debug_multi_result(self, network, make_request):
        async def hang(call):
            await asyncio.sleep(10)

        network.trace_call = hang
        settings = Settings(attempt_timeout_seconds=0.2, run_delay_seconds=0)
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), settings=settings)

        result = await orchestrator.simulate(make_request("set"), mode=SimulationMode.DEBUG_MULTI)

        assert result.mode == SimulationMode.DEBUG_MULTI
        assert [a.mode for a in result.attempts] == [SimulationMode.DEBUG_MULTI]
        assert result.failed_attempts == ()
        assert result.confidence == 100
        assert result.details["constituents"]["trace"] == {"error": "TimeoutError"}


# ── Cache interplay ──────────────────────────────────────────────────────


class TestCaching:
    @pytest.mark.asyncio
    async def test_cache_hit_makes_no_network_calls(self, network, make_request, settings, clock):
        cache = ResultCache(ttl=300, max_entries=10, clock=clock)
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), cache=cache, settings=settings)

        first = await orchestrator.measure(make_request("set"))
        calls_after_first = network.total_calls
        second = await orchestrator.measure(make_request("set"))

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.result == first.result
        assert network.total_calls == calls_after_first

    @pytest.mark.asyncio
    async def test_different_args_miss(self, network, make_request, settings, clock):
        cache = ResultCache(ttl=300, max_entries=10, clock=clock)
        orchestrator = FallbackOrchestrator(build_default_registry(network, settings), cache=cache, settings=settings)
        await orchestrator.measure(make_request("set", args=[1]))
        second = await orchestrator.measure(make_request("set", args=[2]))
        assert second.from_cache is False
        assert network.calls["estimate_gas"] == 2

"""Mode selection and the strategy registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from gasprofiler.core.config import Settings, get_settings
from gasprofiler.core.errors import UnsupportedModeError
from gasprofiler.core.types import SimulationMode, StateMutability
from gasprofiler.ingestion.rpc import NetworkHandle
from gasprofiler.simulator.executors import (
    AccessControlBypassExecutor,
    BytecodeHeuristicExecutor,
    DebugMultiExecutor,
    EstimateExecutor,
    MultiSenderExecutor,
    SponsoredExecutor,
    StaticCallExecutor,
    StrategyExecutor,
    TraceExecutor,
)
from gasprofiler.simulator.sponsor import SponsorValidator

logger = logging.getLogger(__name__)

# Best confidence each mode can report
NOMINAL_CONFIDENCE: dict[SimulationMode, int] = {
    SimulationMode.ESTIMATE: 95,
    SimulationMode.STATIC_CALL: 95,
    SimulationMode.TRACE: 90,
    SimulationMode.DEBUG_MULTI: 100,
    SimulationMode.SPONSORED: 88,
    SimulationMode.BYTECODE_HEURISTIC: 30,
    SimulationMode.ACCESS_CONTROL_BYPASS: 60,
    SimulationMode.MULTI_SENDER: 70,
    SimulationMode.CONSERVATIVE: 10,
}

FALLBACK_ORDER: tuple[SimulationMode, ...] = (
    SimulationMode.ESTIMATE,
    SimulationMode.STATIC_CALL,
    SimulationMode.TRACE,
    SimulationMode.BYTECODE_HEURISTIC,
)

# Inserted ahead of the bytecode heuristic after a permission-style failure
ACCESS_CONTROL_MODES: tuple[SimulationMode, ...] = (
    SimulationMode.ACCESS_CONTROL_BYPASS,
    SimulationMode.MULTI_SENDER,
)


def select_mode(mutability: StateMutability, param_count: int) -> SimulationMode:
    """Pick the primary strategy when the caller asked for AUTO.

    Never touches the network and never raises.
    """
    if mutability.is_read_only:
        return SimulationMode.STATIC_CALL
    if param_count > 3:
        return SimulationMode.TRACE
    return SimulationMode.ESTIMATE


class ModeRegistry:
    """Explicit map from :class:`SimulationMode` to its executor."""

    def __init__(self, executors: Iterable[StrategyExecutor] = ()) -> None:
        self._executors: dict[SimulationMode, StrategyExecutor] = {}
        for executor in executors:
            self.register(executor)

    def register(self, executor: StrategyExecutor) -> None:
        self._executors[executor.mode] = executor

    def get(self, mode: SimulationMode) -> StrategyExecutor:
        try:
            return self._executors[mode]
        except KeyError:
            raise UnsupportedModeError(f"No executor registered for mode '{mode.value}'") from None

    def __contains__(self, mode: object) -> bool:
        return mode in self._executors

    @property
    def modes(self) -> list[SimulationMode]:
        return list(self._executors)


def build_default_registry(
    network: NetworkHandle,
    settings: Settings | None = None,
    sponsors: SponsorValidator | None = None,
) -> ModeRegistry:
    """Registry with every built-in strategy wired to ``network``."""
    settings = settings or get_settings()
    sponsors = sponsors or SponsorValidator(network, settings)
    registry = ModeRegistry(
        [
            EstimateExecutor(network, sponsors),
            StaticCallExecutor(network, sponsors),
            TraceExecutor(network, sponsors),
            DebugMultiExecutor(
                network,
                sponsors,
                concurrent=settings.debug_multi_concurrent,
                attempt_timeout=settings.attempt_timeout_seconds,
            ),
            SponsoredExecutor(network, sponsors),
            BytecodeHeuristicExecutor(network, sponsors),
            AccessControlBypassExecutor(network, sponsors),
            MultiSenderExecutor(network, sponsors, default_sender=settings.sender_address or None),
        ]
    )
    logger.debug("Strategy registry built with %d modes", len(registry.modes))
    return registry

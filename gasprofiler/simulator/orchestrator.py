"""Fallback orchestrator: picks a strategy, falls back on failure, caches successes.

State machine::

    SELECT_MODE -> EXECUTE_PRIMARY -> SUCCESS
                                   -> EXECUTE_FALLBACK_1 -> ... -> SUCCESS
                                                               -> ALL_EXHAUSTED

Every strategy attempt is awaited to completion (bounded by a per-attempt
deadline) before the next one is considered. Strategy failures never escape;
only :class:`AllStrategiesExhaustedError` does, and only for fee-paying calls.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections import deque
from dataclasses import dataclass

from gasprofiler.core.config import Settings, get_settings
from gasprofiler.core.errors import AllStrategiesExhaustedError, GasProfilerError
from gasprofiler.core.types import AttemptRecord, MeasurementResult, SimulationMode
from gasprofiler.simulator.cache import CallFingerprint, ResultCache
from gasprofiler.simulator.executors import SimulationRequest
from gasprofiler.simulator.heuristics import estimate_from_name
from gasprofiler.simulator.modes import (
    ACCESS_CONTROL_MODES,
    FALLBACK_ORDER,
    NOMINAL_CONFIDENCE,
    ModeRegistry,
    select_mode,
)

logger = logging.getLogger(__name__)

CONSERVATIVE_CONFIDENCE = 10

_PERMISSION_MARKERS = (
    "not the owner",
    "not owner",
    "only owner",
    "onlyowner",
    "ownable",
    "caller is not",
    "unauthorized",
    "not authorized",
    "access denied",
    "accesscontrol",
    "missing role",
    "permission",
    "forbidden",
)


class OrchestratorState(str, enum.Enum):
    SELECT_MODE = "select_mode"
    EXECUTE_PRIMARY = "execute_primary"
    EXECUTE_FALLBACK = "execute_fallback"
    SUCCESS = "success"
    ALL_EXHAUSTED = "all_exhausted"


def is_permission_error(message: str) -> bool:
    """True when a failure reads like the sender was rejected."""
    lower = message.lower()
    return any(marker in lower for marker in _PERMISSION_MARKERS)


@dataclass(frozen=True)
class Measurement:
    """An orchestrated result plus whether it came from the cache."""

    result: MeasurementResult
    from_cache: bool = False
    state: OrchestratorState = OrchestratorState.SUCCESS


class FallbackOrchestrator:
    """Runs strategies from a :class:`ModeRegistry` until one succeeds."""

    def __init__(
        self,
        registry: ModeRegistry,
        cache: ResultCache | None = None,
        settings: Settings | None = None,
        attempt_timeout: float | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._registry = registry
        self._cache = cache
        self._attempt_timeout = (
            attempt_timeout if attempt_timeout is not None else settings.attempt_timeout_seconds
        )

    @staticmethod
    def primary_mode(request: SimulationRequest, requested: SimulationMode) -> SimulationMode:
        if requested != SimulationMode.AUTO:
            return requested
        if request.sponsor:
            return SimulationMode.SPONSORED
        return select_mode(request.function.mutability, request.function.param_count)

    async def simulate(
        self,
        request: SimulationRequest,
        mode: SimulationMode = SimulationMode.AUTO,
    ) -> MeasurementResult:
        """Measure ``request`` and return the result alone."""
        return (await self.measure(request, mode)).result

    async def measure(
        self,
        request: SimulationRequest,
        mode: SimulationMode = SimulationMode.AUTO,
    ) -> Measurement:
        fingerprint = CallFingerprint.from_request(request, mode)
        if self._cache is not None:
            cached = await self._cache.get(fingerprint)
            if cached is not None:
                logger.debug(
                    "Cache hit for %s",
                    request.function.signature,
                    extra={"function": request.function.signature, "mode": cached.mode.value},
                )
                return Measurement(result=cached, from_cache=True)

        primary = self.primary_mode(request, mode)
        queue: deque[SimulationMode] = deque([primary, *(m for m in FALLBACK_ORDER if m != primary)])
        tried: list[SimulationMode] = []
        attempts: list[AttemptRecord] = []
        access_paths_added = False
        state = OrchestratorState.EXECUTE_PRIMARY

        while queue:
            current = queue.popleft()
            if current in tried:
                continue

            # Confidence never rises above what an earlier, more precise mode offered
            ceiling = min((NOMINAL_CONFIDENCE.get(m, 100) for m in tried), default=100)
            tried.append(current)
            started = time.monotonic()
            deadline = self._attempt_timeout
            try:
                executor = self._registry.get(current)
                deadline = executor.attempt_deadline(self._attempt_timeout)
                result = await asyncio.wait_for(executor.execute(request), timeout=deadline)
            except asyncio.TimeoutError:
                error = f"{current.value} timed out after {deadline:g}s"
            except GasProfilerError as exc:
                error = exc.message
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
            else:
                attempts.append(AttemptRecord(mode=current))
                final = result.model_copy(
                    update={
                        "used_fallback": current != primary,
                        "attempts": tuple(attempts),
                        "confidence": min(result.confidence, ceiling),
                    }
                )
                logger.info(
                    "%s measured via %s: %d gas (confidence %d)",
                    request.function.signature,
                    current.value,
                    final.gas_used,
                    final.confidence,
                    extra={
                        "function": request.function.signature,
                        "mode": current.value,
                        "gas_used": final.gas_used,
                        "confidence": final.confidence,
                        "duration_ms": int((time.monotonic() - started) * 1000),
                    },
                )
                if self._cache is not None:
                    await self._cache.put(fingerprint, final)
                return Measurement(result=final, state=OrchestratorState.SUCCESS)

            attempts.append(AttemptRecord(mode=current, error=error))
            state = OrchestratorState.EXECUTE_FALLBACK
            logger.warning(
                "%s failed for %s: %s",
                current.value,
                request.function.signature,
                error,
                extra={"function": request.function.signature, "mode": current.value},
            )

            if not access_paths_added and is_permission_error(error):
                access_paths_added = True
                self._insert_access_paths(queue)

        logger.debug("Fallback chain ended in state %s", state.value)
        return self._exhausted(request, attempts)

    @staticmethod
    def _insert_access_paths(queue: deque[SimulationMode]) -> None:
        try:
            position = queue.index(SimulationMode.BYTECODE_HEURISTIC)
        except ValueError:
            position = len(queue)
        for offset, mode in enumerate(ACCESS_CONTROL_MODES):
            queue.insert(position + offset, mode)

    def _exhausted(self, request: SimulationRequest, attempts: list[AttemptRecord]) -> Measurement:
        signature = request.function.signature
        if request.fee_paying:
            raise AllStrategiesExhaustedError(
                f"All {len(attempts)} strategies failed for {signature}; refusing to guess gas for a real transaction",
                attempts=attempts,
            )

        gas = estimate_from_name(request.function.name)
        logger.error(
            "All strategies failed for %s, using conservative estimate %d",
            signature,
            gas,
            extra={"function": signature, "mode": SimulationMode.CONSERVATIVE.value},
        )
        result = MeasurementResult(
            success=False,
            gas_used=gas,
            base_gas=gas,
            confidence=CONSERVATIVE_CONFIDENCE,
            mode=SimulationMode.CONSERVATIVE,
            used_fallback=True,
            attempts=tuple(attempts),
            sender=request.sender,
            details={
                "method": "name_heuristic",
                "note": "Every strategy failed; figure comes from a known-imprecise name table",
            },
        )
        return Measurement(result=result, state=OrchestratorState.ALL_EXHAUSTED)

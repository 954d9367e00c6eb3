"""Measurement strategy executors.

Every executor answers one question ("how much gas does this call use?")
with one technique. It either returns a :class:`MeasurementResult` or raises
a :class:`StrategyError` subclass. Executors never fall back on their own;
moving to the next technique is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gasprofiler.core.errors import (
    AccessDeniedError,
    RPCError,
    SponsorValidationError,
    StrategyError,
    UnsupportedModeError,
    WouldRevertError,
)
from gasprofiler.core.types import MeasurementResult, SimulationMode
from gasprofiler.ingestion.abi import FunctionSpec
from gasprofiler.ingestion.advisor import COMMON_TEST_SENDERS, ZERO_ADDRESS, discover_owner
from gasprofiler.ingestion.rpc import ContractCall, NetworkHandle, is_revert_error, is_unsupported_error
from gasprofiler.simulator.heuristics import analyze_bytecode, estimate_from_complexity
from gasprofiler.simulator.sponsor import SponsorValidator

logger = logging.getLogger(__name__)

ESTIMATE_CONFIDENCE = 95
ESTIMATE_SPONSORED_CONFIDENCE = 85
TRACE_CONFIDENCE = 90
DEBUG_MULTI_BONUS = 5
# Extra time the orchestrator allows debug/multi beyond its constituent deadlines
DEBUG_MULTI_GRACE_SECONDS = 1.0
SPONSORED_CONFIDENCE = 88
BYTECODE_CONFIDENCE = 30
ACCESS_CONTROL_CONFIDENCE = 60
MULTI_SENDER_CONFIDENCE = 70


@dataclass(frozen=True)
class SimulationRequest:
    """Everything a strategy needs to measure one call."""

    address: str
    function: FunctionSpec
    calldata: str
    args: tuple[Any, ...] = ()
    sender: str | None = None
    sponsor: str | None = None
    fee_paying: bool = False
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def build(
        cls,
        address: str,
        function: FunctionSpec,
        args: list[Any],
        sender: str | None = None,
        sponsor: str | None = None,
        fee_paying: bool = False,
    ) -> SimulationRequest:
        return cls(
            address=address,
            function=function,
            calldata=function.encode_call(args),
            args=tuple(args),
            sender=sender,
            sponsor=sponsor,
            fee_paying=fee_paying,
        )

    @property
    def call(self) -> ContractCall:
        return ContractCall(to=self.address, data=self.calldata, sender=self.sender)


class StrategyExecutor(ABC):
    """One measurement technique."""

    mode: SimulationMode
    confidence: int

    def __init__(self, network: NetworkHandle, sponsors: SponsorValidator | None = None) -> None:
        self._network = network
        self._sponsors = sponsors

    @abstractmethod
    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        """Measure ``request`` or raise a :class:`StrategyError`."""

    def attempt_deadline(self, timeout: float) -> float:
        """Outer deadline the orchestrator allows for one attempt."""
        return timeout

    async def _estimate(self, call: ContractCall) -> int:
        try:
            return await self._network.estimate_gas(call)
        except RPCError as exc:
            raise StrategyError(f"estimateGas failed: {exc.message}") from exc

    async def _sponsor_overhead(self, request: SimulationRequest) -> int:
        if not request.sponsor or self._sponsors is None:
            return 0
        return await self._sponsors.overhead(request.sponsor)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mode={self.mode.value}>"


# ── Dynamic strategies ───────────────────────────────────────────────────────


class EstimateExecutor(StrategyExecutor):
    """Network gas estimation (``eth_estimateGas``)."""

    mode = SimulationMode.ESTIMATE
    confidence = ESTIMATE_CONFIDENCE

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        base = await self._estimate(request.call)
        overhead = await self._sponsor_overhead(request)
        return MeasurementResult(
            success=True,
            gas_used=base + overhead,
            base_gas=base,
            sponsor_overhead=overhead,
            confidence=ESTIMATE_SPONSORED_CONFIDENCE if overhead else ESTIMATE_CONFIDENCE,
            mode=self.mode,
            sender=request.sender,
            details={"method": "eth_estimateGas", "sponsor_analysis": bool(overhead)},
        )


class StaticCallExecutor(EstimateExecutor):
    """Read-only trial call to catch reverts, then estimation."""

    mode = SimulationMode.STATIC_CALL

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        try:
            await self._network.call(request.call)
        except RPCError as exc:
            if is_revert_error(exc):
                raise WouldRevertError(f"Function would revert: {exc.message}") from exc
            logger.debug("Static call inconclusive for %s: %s", request.function.signature, exc)

        result = await super().execute(request)
        return result.model_copy(
            update={
                "mode": self.mode,
                "details": {**result.details, "method": "eth_call+eth_estimateGas"},
            }
        )


class TraceExecutor(StrategyExecutor):
    """``debug_traceCall`` with the call tracer."""

    mode = SimulationMode.TRACE
    confidence = TRACE_CONFIDENCE

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        try:
            trace = await self._network.trace_call(request.call)
        except RPCError as exc:
            if is_unsupported_error(exc):
                raise UnsupportedModeError(f"Tracing not supported by node: {exc.message}") from exc
            if is_revert_error(exc):
                raise WouldRevertError(f"Trace reverted: {exc.message}") from exc
            raise StrategyError(f"debug_traceCall failed: {exc.message}") from exc

        if trace.get("error"):
            raise WouldRevertError(f"Trace reverted: {trace['error']}")

        raw_gas = trace.get("gasUsed")
        if raw_gas is None:
            raise StrategyError("Trace carried no gasUsed")
        base = int(raw_gas, 16) if isinstance(raw_gas, str) else int(raw_gas)
        overhead = await self._sponsor_overhead(request)
        return MeasurementResult(
            success=True,
            gas_used=base + overhead,
            base_gas=base,
            sponsor_overhead=overhead,
            confidence=TRACE_CONFIDENCE,
            mode=self.mode,
            sender=request.sender,
            details={
                "method": "debug_traceCall",
                "trace": {"type": trace.get("type"), "gasUsed": raw_gas, "calls": len(trace.get("calls", []))},
            },
        )


class DebugMultiExecutor(StrategyExecutor):
    """Runs estimate, static-call and trace and keeps the most confident success."""

    mode = SimulationMode.DEBUG_MULTI
    confidence = 100

    def __init__(
        self,
        network: NetworkHandle,
        sponsors: SponsorValidator | None = None,
        concurrent: bool = True,
        attempt_timeout: float | None = None,
    ) -> None:
        super().__init__(network, sponsors)
        self._constituents: list[StrategyExecutor] = [
            EstimateExecutor(network, sponsors),
            StaticCallExecutor(network, sponsors),
            TraceExecutor(network, sponsors),
        ]
        self._concurrent = concurrent
        self._attempt_timeout = attempt_timeout

    def attempt_deadline(self, timeout: float) -> float:
        # Constituents enforce their own deadline; the outer one must not fire first
        if self._attempt_timeout is None:
            return timeout
        rounds = 1 if self._concurrent else len(self._constituents)
        return max(timeout, self._attempt_timeout * rounds + DEBUG_MULTI_GRACE_SECONDS)

    async def _run_one(self, executor: StrategyExecutor, request: SimulationRequest) -> MeasurementResult:
        if self._attempt_timeout is None:
            return await executor.execute(request)
        return await asyncio.wait_for(executor.execute(request), timeout=self._attempt_timeout)

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        outcomes: list[MeasurementResult | BaseException]
        if self._concurrent:
            outcomes = list(
                await asyncio.gather(
                    *(self._run_one(e, request) for e in self._constituents),
                    return_exceptions=True,
                )
            )
        else:
            outcomes = []
            for executor in self._constituents:
                try:
                    outcomes.append(await self._run_one(executor, request))
                except Exception as exc:
                    outcomes.append(exc)

        summary: dict[str, Any] = {}
        successes: list[MeasurementResult] = []
        for executor, outcome in zip(self._constituents, outcomes):
            if isinstance(outcome, MeasurementResult):
                successes.append(outcome)
                summary[executor.mode.value] = {"gas_used": outcome.gas_used, "confidence": outcome.confidence}
            else:
                summary[executor.mode.value] = {"error": str(outcome) or type(outcome).__name__}

        if not successes:
            raise StrategyError(f"All debug simulation methods failed: {summary}")

        best = successes[0]
        for candidate in successes[1:]:
            if candidate.confidence > best.confidence:
                best = candidate

        return best.model_copy(
            update={
                "mode": self.mode,
                "confidence": min(best.confidence + DEBUG_MULTI_BONUS, 100),
                "details": {
                    **best.details,
                    "method": "debug_multi",
                    "selected": best.mode.value,
                    "constituents": summary,
                },
            }
        )


class SponsoredExecutor(StrategyExecutor):
    """Estimation of a call whose fees a paymaster sponsors."""

    mode = SimulationMode.SPONSORED
    confidence = SPONSORED_CONFIDENCE

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        if not request.sponsor:
            raise SponsorValidationError("Sponsor address required for sponsored simulation")
        if self._sponsors is None:
            raise UnsupportedModeError("No sponsor validator configured")

        validation = await self._sponsors.validate(request.sponsor)
        if not validation.valid:
            raise SponsorValidationError(
                f"Invalid sponsor {request.sponsor}: {', '.join(validation.errors) or 'interface check failed'}"
            )

        base = await self._estimate(request.call)
        overhead = await self._sponsors.overhead(request.sponsor)
        return MeasurementResult(
            success=True,
            gas_used=base + overhead,
            base_gas=base,
            sponsor_overhead=overhead,
            confidence=SPONSORED_CONFIDENCE,
            mode=self.mode,
            sender=request.sender,
            details={
                "method": "sponsored_simulation",
                "sponsor": request.sponsor,
                "sponsor_features": list(validation.supported_features),
                "sponsor_balance": validation.balance,
            },
        )


# ── Static fallback ──────────────────────────────────────────────────────────


class BytecodeHeuristicExecutor(StrategyExecutor):
    """Static look at deployed bytecode. Low confidence by construction."""

    mode = SimulationMode.BYTECODE_HEURISTIC
    confidence = BYTECODE_CONFIDENCE

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        try:
            code = await self._network.get_code(request.address)
        except RPCError as exc:
            raise StrategyError(f"getCode failed: {exc.message}") from exc

        profile = analyze_bytecode(code, request.function.selector)
        if not profile.code_size:
            raise StrategyError(f"No bytecode at {request.address}")

        gas = estimate_from_complexity(profile.complexity, request.function.param_count)
        return MeasurementResult(
            success=True,
            gas_used=gas,
            base_gas=gas,
            confidence=BYTECODE_CONFIDENCE,
            mode=self.mode,
            sender=request.sender,
            details={"method": "bytecode_analysis", "selector": request.function.selector, **profile.to_dict()},
        )


# ── Exploratory sender strategies ────────────────────────────────────────────


class AccessControlBypassExecutor(StrategyExecutor):
    """Retries estimation as the owner (if discoverable) or a test address."""

    mode = SimulationMode.ACCESS_CONTROL_BYPASS
    confidence = ACCESS_CONTROL_CONFIDENCE

    async def candidate_senders(self, request: SimulationRequest) -> list[str]:
        senders: list[str] = []
        owner = await discover_owner(self._network, request.address)
        if owner:
            senders.append(owner)
        senders.append(ZERO_ADDRESS)
        senders.extend(COMMON_TEST_SENDERS)
        tried = (request.sender or "").lower()
        seen: set[str] = set()
        unique = []
        for s in senders:
            if s.lower() == tried or s.lower() in seen:
                continue
            seen.add(s.lower())
            unique.append(s)
        return unique

    async def execute(self, request: SimulationRequest) -> MeasurementResult:
        senders = await self.candidate_senders(request)
        tried: list[dict[str, Any]] = []
        for sender in senders:
            try:
                gas = await self._network.estimate_gas(request.call.with_sender(sender))
            except RPCError as exc:
                tried.append({"sender": sender, "error": exc.message})
                continue
            tried.append({"sender": sender, "gas_used": gas})
            return MeasurementResult(
                success=True,
                gas_used=gas,
                base_gas=gas,
                confidence=self.confidence,
                mode=self.mode,
                exploratory=True,
                sender=sender,
                details={
                    "method": self.mode.value,
                    "successful_sender": sender,
                    "senders_tried": tried,
                    "note": "Measured with an alternate sender; the caller's own cost may differ",
                },
            )
        raise AccessDeniedError(f"{self.mode.value} failed with all {len(senders)} alternate senders")


class MultiSenderExecutor(AccessControlBypassExecutor):
    """Systematically tries a fixed list of senders, recording each outcome."""

    mode = SimulationMode.MULTI_SENDER
    confidence = MULTI_SENDER_CONFIDENCE

    def __init__(
        self,
        network: NetworkHandle,
        sponsors: SponsorValidator | None = None,
        default_sender: str | None = None,
    ) -> None:
        super().__init__(network, sponsors)
        self._default_sender = default_sender

    async def candidate_senders(self, request: SimulationRequest) -> list[str]:
        senders = [s for s in (self._default_sender, *COMMON_TEST_SENDERS, ZERO_ADDRESS) if s]
        tried = (request.sender or "").lower()
        return [s for s in dict.fromkeys(senders) if s.lower() != tried]

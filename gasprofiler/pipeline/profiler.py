"""Profiling session runner.

Drives one profiling session end to end:

1. Check that code is deployed at the address and identify the network
2. Resolve the requested functions and work out arguments and sender
3. For each function, run N measurements strictly one after another with
   a short delay in between (real runs fetch the unit price once first)
4. Fold the run records into per-function statistics

Simulated (gasless) runs go through the fallback orchestrator and never
fail the session; a function whose arguments cannot be encoded is skipped
and listed in ``ProfilingSession.skipped``. Real runs submit a transaction
from a node-managed account; any failure there aborts the whole session.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

from gasprofiler.core.chains import network_name
from gasprofiler.core.config import Settings, get_settings
from gasprofiler.core.errors import ABIError, ContractNotFoundError, GasProfilerError, ProfilingAbortedError, RPCError
from gasprofiler.core.logging import SessionLogFilter, current_session_id
from gasprofiler.core.store import SessionStore
from gasprofiler.core.types import MeasurementResult, ProfilingSession, RunRecord, SimulationMode
from gasprofiler.ingestion.abi import FunctionSpec, abi_functions, resolve_functions
from gasprofiler.ingestion.advisor import AdvisorReport, ArgumentAdvisor, detect_contract_type, generate_args
from gasprofiler.ingestion.rpc import (
    ContractCall,
    TransactingNetwork,
    receipt_block_number,
    receipt_gas_used,
    receipt_succeeded,
)
from gasprofiler.simulator.aggregator import RunAggregator
from gasprofiler.simulator.cache import ResultCache
from gasprofiler.simulator.cost import CostCalculator
from gasprofiler.simulator.executors import SimulationRequest
from gasprofiler.simulator.modes import build_default_registry
from gasprofiler.simulator.orchestrator import FallbackOrchestrator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Gas limit sent with real transactions, relative to the pre-flight figure
GAS_LIMIT_MARGIN = 1.2

_SESSION_LOGGERS = (
    __name__,
    "gasprofiler.simulator.orchestrator",
    "gasprofiler.simulator.executors",
    "gasprofiler.simulator.cost",
)

_TRANSIENT_MESSAGES = (
    "connection reset",
    "connection refused",
    "timed out",
    "timeout",
    "temporarily unavailable",
    "service unavailable",
    "too many requests",
    "rate limit",
)


def _is_transient(exc: Exception) -> bool:
    """Return True if the exception looks like a transient network hiccup."""
    msg = str(exc).lower()
    return any(t in msg for t in _TRANSIENT_MESSAGES)


async def _retry_async(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 0.5,
    label: str = "operation",
) -> T:
    """Retry an async operation with exponential back-off on transient errors."""
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            if attempt >= max_retries or not _is_transient(exc):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Transient error in %s (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt + 1, max_retries, delay, exc,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")


@contextmanager
def _session_logging(session_id: str) -> Iterator[None]:
    """Stamp ``session_id`` on every record the session's loggers emit in this context."""
    token = current_session_id.set(session_id)
    session_filter = SessionLogFilter()
    loggers = [logging.getLogger(name) for name in _SESSION_LOGGERS]
    for session_logger in loggers:
        session_logger.addFilter(session_filter)
    try:
        yield
    finally:
        for session_logger in loggers:
            session_logger.removeFilter(session_filter)
        current_session_id.reset(token)


class GasProfiler:
    """Profiles functions of one deployed contract.

    The result cache is injected so several profilers (or sessions) can
    share one; by default each profiler owns a fresh cache.
    """

    def __init__(
        self,
        network: TransactingNetwork,
        orchestrator: FallbackOrchestrator | None = None,
        cache: ResultCache | None = None,
        advisor: ArgumentAdvisor | None = None,
        store: SessionStore | None = None,
        settings: Settings | None = None,
        rpc_url: str = "",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._network = network
        self._cache = cache if cache is not None else ResultCache(
            ttl=self._settings.cache_ttl_seconds,
            max_entries=self._settings.cache_max_entries,
        )
        self._orchestrator = orchestrator or FallbackOrchestrator(
            build_default_registry(network, self._settings),
            cache=self._cache,
            settings=self._settings,
        )
        self._advisor = advisor or ArgumentAdvisor(network, default_sender=self._settings.sender_address or None)
        self._store = store
        self._costs = CostCalculator(network, places=self._settings.cost_display_places)
        self._rpc_url = rpc_url
        self._sleep = sleep

    async def profile(
        self,
        address: str,
        abi: list[dict[str, Any]],
        functions: list[str] | None = None,
        args: dict[str, list[Any]] | None = None,
        runs: int | None = None,
        gasless: bool = True,
        sponsor: str | None = None,
        sender: str | None = None,
        mode: SimulationMode = SimulationMode.AUTO,
        use_advisor: bool = True,
    ) -> ProfilingSession:
        """Profile ``functions`` (all ABI functions when omitted) at ``address``."""
        runs = runs if runs is not None else self._settings.default_runs
        if runs < 1:
            raise GasProfilerError("Run count must be at least 1", runs=runs)

        session_id = str(uuid.uuid4())
        with _session_logging(session_id):
            return await self._run_session(
                session_id, address, abi, functions, args or {}, runs, gasless, sponsor, sender, mode, use_advisor
            )

    async def _run_session(
        self,
        session_id: str,
        address: str,
        abi: list[dict[str, Any]],
        functions: list[str] | None,
        args: dict[str, list[Any]],
        runs: int,
        gasless: bool,
        sponsor: str | None,
        sender: str | None,
        mode: SimulationMode,
        use_advisor: bool,
    ) -> ProfilingSession:
        log_extra = {"session_id": session_id}
        started = time.monotonic()

        code = await _retry_async(lambda: self._network.get_code(address), label="eth_getCode")
        if not code or code == "0x":
            raise ContractNotFoundError(f"No contract code at {address}", address=address)

        chain_id = await self._chain_id()
        specs = resolve_functions(abi, functions) if functions else abi_functions(abi)

        hints: AdvisorReport | None = None
        if use_advisor and any(self._caller_args(args, spec) is None and spec.param_count for spec in specs):
            hints = await self._advisor.advise(abi, specs, address)

        logger.info(
            "Profiling %d function(s) at %s on %s, %d run(s) each, %s",
            len(specs),
            address,
            network_name(chain_id) if chain_id is not None else "unknown network",
            runs,
            "gasless" if gasless else "real transactions",
            extra=log_extra,
        )

        contract_type = hints.contract_type if hints else detect_contract_type(abi)
        aggregator = RunAggregator()
        skipped: dict[str, str] = {}
        for spec in specs:
            fn_args, fn_sender = self._call_inputs(spec, args, hints, contract_type, sender, gasless)
            try:
                request = SimulationRequest.build(
                    address,
                    spec,
                    fn_args,
                    sender=fn_sender,
                    sponsor=sponsor,
                    fee_paying=not gasless,
                )
            except ABIError as exc:
                if not gasless:
                    raise ProfilingAbortedError(
                        f"Cannot build a transaction for {spec.signature}: {exc.message}",
                        function=spec.signature,
                    ) from exc
                logger.warning(
                    "Skipping %s: %s",
                    spec.signature,
                    exc.message,
                    extra={**log_extra, "function": spec.signature},
                )
                skipped[spec.signature] = exc.message
                continue

            # Only real runs are priced
            unit_price = None if gasless else await self._costs.fetch_unit_price()

            for run in range(1, runs + 1):
                if gasless:
                    record = await self._simulated_run(request, run, mode, unit_price)
                else:
                    record = await self._real_run(request, run, mode, unit_price)
                aggregator.record(spec.signature, record)
                logger.info(
                    "%s run %d/%d: %d gas",
                    spec.signature,
                    run,
                    runs,
                    record.gas_used,
                    extra={**log_extra, "function": spec.signature, "run": run, "gas_used": record.gas_used},
                )
                if run < runs:
                    await self._sleep(self._settings.run_delay_seconds)

        session = ProfilingSession(
            session_id=session_id,
            rpc=self._rpc_url,
            address=address,
            network=network_name(chain_id) if chain_id is not None else "",
            chain_id=chain_id,
            timestamp=datetime.now(timezone.utc),
            gasless=gasless,
            sponsor=sponsor,
            results=aggregator.profiles(),
            skipped=skipped,
        )
        logger.info(
            "Session complete: %d function(s) profiled, %d skipped",
            len(session.results),
            len(skipped),
            extra={**log_extra, "duration_ms": int((time.monotonic() - started) * 1000)},
        )

        if self._store is not None:
            await self._store.save(session)
        return session

    # ── Inputs ───────────────────────────────────────────────────────────────

    @staticmethod
    def _caller_args(args: dict[str, list[Any]], spec: FunctionSpec) -> list[Any] | None:
        if spec.signature in args:
            return args[spec.signature]
        return args.get(spec.name)

    def _call_inputs(
        self,
        spec: FunctionSpec,
        args: dict[str, list[Any]],
        hints: AdvisorReport | None,
        contract_type: str,
        sender: str | None,
        gasless: bool,
    ) -> tuple[list[Any], str | None]:
        hint = hints.hints.get(spec.signature) if hints else None
        fn_args = self._caller_args(args, spec)
        if fn_args is None:
            fn_args = list(hint.args) if hint else generate_args(spec, contract_type)

        if not gasless:
            # Real runs always come from the configured account
            return fn_args, sender or self._settings.sender_address or None
        if sender:
            return fn_args, sender
        if hint and hint.sender:
            return fn_args, hint.sender
        return fn_args, self._settings.sender_address or None

    async def _chain_id(self) -> int | None:
        try:
            return await _retry_async(self._network.chain_id, label="eth_chainId")
        except RPCError as exc:
            logger.warning("Could not determine chain id: %s", exc)
            return None

    # ── Runs ─────────────────────────────────────────────────────────────────

    async def _simulated_run(
        self,
        request: SimulationRequest,
        run: int,
        mode: SimulationMode,
        unit_price: int | None,
    ) -> RunRecord:
        measurement = await self._orchestrator.measure(request, mode)
        return RunRecord(
            run=run,
            result=measurement.result,
            args=list(request.args),
            timestamp=datetime.now(timezone.utc),
            from_cache=measurement.from_cache,
            unit_price=unit_price,
            sponsor=request.sponsor,
        )

    async def _real_run(
        self,
        request: SimulationRequest,
        run: int,
        mode: SimulationMode,
        unit_price: int | None,
    ) -> RunRecord:
        signature = request.function.signature
        if not request.sender:
            raise ProfilingAbortedError(
                "Real transactions need a node-managed sender (set GASPROFILER_SENDER_ADDRESS)",
                function=signature,
                run=run,
            )
        try:
            preflight = await self._orchestrator.measure(request, mode)
            call = ContractCall(
                to=request.address,
                data=request.calldata,
                sender=request.sender,
                gas=int(preflight.result.gas_used * GAS_LIMIT_MARGIN),
            )
            tx_hash = await self._network.send_transaction(call)
            receipt = await self._network.wait_for_receipt(tx_hash)
            if not receipt_succeeded(receipt):
                raise ProfilingAbortedError(f"Transaction {tx_hash} reverted", function=signature, run=run)
        except ProfilingAbortedError:
            raise
        except Exception as exc:
            logger.error("Real run %d of %s failed: %s", run, signature, exc, extra={"function": signature, "run": run})
            raise ProfilingAbortedError(
                f"Run {run} of {signature} failed: {exc}",
                function=signature,
                run=run,
            ) from exc

        gas = receipt_gas_used(receipt)
        cost_wei, cost = self._costs.price(gas, unit_price)
        result = MeasurementResult(
            success=True,
            gas_used=gas,
            base_gas=gas,
            confidence=100,
            mode=SimulationMode.TRANSACTION,
            attempts=preflight.result.attempts,
            sender=request.sender,
            details={
                "method": "eth_sendTransaction",
                "preflight_mode": preflight.result.mode.value,
                "preflight_gas": preflight.result.gas_used,
            },
        )
        return RunRecord(
            run=run,
            result=result,
            args=list(request.args),
            timestamp=datetime.now(timezone.utc),
            tx_hash=tx_hash,
            block_number=receipt_block_number(receipt),
            unit_price=unit_price,
            cost_wei=cost_wei,
            cost=cost,
            sponsor=request.sponsor,
        )

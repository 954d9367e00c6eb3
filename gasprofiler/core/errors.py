"""Exception taxonomy for the profiler.

Strategy executors raise subclasses of :class:`StrategyError`; the fallback
orchestrator catches them and moves on to the next strategy. Only
:class:`AllStrategiesExhaustedError` (for fee-paying calls) and
:class:`ProfilingAbortedError` escape to callers.
"""

from __future__ import annotations

from typing import Any


class GasProfilerError(Exception):
    """Base exception for profiler errors."""

    code = "GAS_PROFILER_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ABIError(GasProfilerError):
    """ABI could not be loaded, or a function/argument did not match it."""

    code = "ABI_ERROR"


class RPCError(GasProfilerError):
    """JSON-RPC call returned an error object or a transport failure."""

    code = "RPC_ERROR"

    def __init__(
        self,
        message: str,
        rpc_code: int | None = None,
        data: Any = None,
        method: str = "",
    ) -> None:
        super().__init__(message, rpc_code=rpc_code, method=method)
        self.rpc_code = rpc_code
        self.data = data
        self.method = method


# ── Strategy errors ──────────────────────────────────────────────────────────


class StrategyError(GasProfilerError):
    """A single measurement strategy failed."""

    code = "STRATEGY_FAILED"


class WouldRevertError(StrategyError):
    """Static call showed the call reverts with these arguments."""

    code = "WOULD_REVERT"


class UnsupportedModeError(StrategyError):
    """The network (or registry) lacks the requested capability."""

    code = "UNSUPPORTED_MODE"


class SponsorValidationError(StrategyError):
    """The fee sponsor contract failed interface validation."""

    code = "SPONSOR_INVALID"


class AccessDeniedError(StrategyError):
    """No alternate sender could get past the call's access control."""

    code = "ACCESS_DENIED"


class AllStrategiesExhaustedError(GasProfilerError):
    """Every strategy in the fallback chain failed."""

    code = "ALL_STRATEGIES_EXHAUSTED"

    def __init__(self, message: str, attempts: list[Any] | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts or []


class ProfilingAbortedError(GasProfilerError):
    """A real on-chain run failed; the whole session is abandoned."""

    code = "PROFILING_ABORTED"

    def __init__(self, message: str, function: str = "", run: int = 0) -> None:
        super().__init__(message, function=function, run=run)
        self.function = function
        self.run = run


class ContractNotFoundError(GasProfilerError):
    """No deployed code at the profiled address."""

    code = "CONTRACT_NOT_FOUND"

"""Quick analysis of a deployed contract.

Summarises the contract (type, function mix, events, code size), picks a
small set of functions (state-changing first) and profiles them gaslessly.
The ABI can come from the caller, from a named token standard, or be
recognised from the selectors in the deployed code.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from gasprofiler.core.config import Settings, get_settings
from gasprofiler.core.errors import ABIError, ContractNotFoundError, GasProfilerError
from gasprofiler.core.types import ProfilingSession
from gasprofiler.ingestion.abi import abi_functions
from gasprofiler.ingestion.advisor import detect_contract_type
from gasprofiler.ingestion.rpc import TransactingNetwork
from gasprofiler.ingestion.standards import detect_standard, standard_abi, standard_name
from gasprofiler.pipeline.profiler import GasProfiler
from gasprofiler.simulator.heuristics import normalize_bytecode

logger = logging.getLogger(__name__)

DEFAULT_MAX_FUNCTIONS = 10
QUICK_MAX_FUNCTIONS = 5
QUICK_RUNS = 2

# Upper function count of each band; anything above is "very complex"
_COMPLEXITY_BANDS = ((5, "simple"), (15, "moderate"), (30, "complex"))


def complexity_label(function_count: int) -> str:
    if function_count == 0:
        return "unknown"
    for limit, label in _COMPLEXITY_BANDS:
        if function_count <= limit:
            return label
    return "very complex"


class ContractSummary(BaseModel):
    """Static facts about a contract, from its ABI and deployed code."""

    contract_type: str
    total_functions: int
    view_functions: int
    state_changing_functions: int
    events: int
    bytecode_size: int
    complexity: str


class QuickAnalysis(BaseModel):
    summary: ContractSummary
    abi_source: str
    functions: list[str]
    session: ProfilingSession | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": self.summary.model_dump(),
            "abi_source": self.abi_source,
            "functions": list(self.functions),
            "session": self.session.to_dict() if self.session else None,
        }


def summarize_contract(abi: list[dict[str, Any]], bytecode: str) -> ContractSummary:
    specs = abi_functions(abi)
    read_only = sum(1 for s in specs if s.mutability.is_read_only)
    return ContractSummary(
        contract_type=detect_contract_type(abi),
        total_functions=len(specs),
        view_functions=read_only,
        state_changing_functions=len(specs) - read_only,
        events=sum(1 for item in abi if item.get("type") == "event"),
        bytecode_size=len(normalize_bytecode(bytecode)),
        complexity=complexity_label(len(specs)),
    )


def select_functions(
    abi: list[dict[str, Any]],
    functions: list[str] | None = None,
    view_only: bool = False,
    state_only: bool = False,
    max_functions: int = DEFAULT_MAX_FUNCTIONS,
) -> list[str]:
    """Signatures to profile: the caller's list, else a capped slice of the ABI.

    Without a filter, state-changing functions come before read-only ones.
    """
    if functions:
        return list(functions)
    if view_only and state_only:
        raise GasProfilerError("view_only and state_only cannot both be set")
    if max_functions < 1:
        raise GasProfilerError("max_functions must be at least 1", max_functions=max_functions)

    specs = abi_functions(abi)
    read_only = [s for s in specs if s.mutability.is_read_only]
    state_changing = [s for s in specs if not s.mutability.is_read_only]
    if view_only:
        candidates = read_only
    elif state_only:
        candidates = state_changing
    else:
        candidates = state_changing + read_only
    return [s.signature for s in candidates[:max_functions]]


class QuickAnalyzer:
    """One-shot contract summary plus a short gasless profiling session."""

    def __init__(
        self,
        network: TransactingNetwork,
        profiler: GasProfiler | None = None,
        settings: Settings | None = None,
        rpc_url: str = "",
    ) -> None:
        self._settings = settings or get_settings()
        self._network = network
        self._profiler = profiler or GasProfiler(network, settings=self._settings, rpc_url=rpc_url)

    async def analyze(
        self,
        address: str,
        abi: list[dict[str, Any]] | None = None,
        standard: str | None = None,
        functions: list[str] | None = None,
        view_only: bool = False,
        state_only: bool = False,
        max_functions: int | None = None,
        runs: int | None = None,
        quick: bool = False,
    ) -> QuickAnalysis:
        code = await self._network.get_code(address)
        if not code or code == "0x":
            raise ContractNotFoundError(f"No contract code at {address}", address=address)

        abi, source = self._resolve_abi(abi, standard, code)
        summary = summarize_contract(abi, code)
        logger.info(
            "%s at %s: %d function(s), %s",
            summary.contract_type,
            address,
            summary.total_functions,
            summary.complexity,
        )

        if quick:
            limit = QUICK_MAX_FUNCTIONS
        else:
            limit = DEFAULT_MAX_FUNCTIONS if max_functions is None else max_functions
        selected = select_functions(abi, functions, view_only, state_only, limit)
        if not selected:
            logger.warning("No functions to profile at %s", address)
            return QuickAnalysis(summary=summary, abi_source=source, functions=[])

        if runs is None:
            runs = QUICK_RUNS if quick else self._settings.default_runs
        session = await self._profiler.profile(address, abi, functions=selected, runs=runs, gasless=True)
        return QuickAnalysis(summary=summary, abi_source=source, functions=selected, session=session)

    @staticmethod
    def _resolve_abi(
        abi: list[dict[str, Any]] | None,
        standard: str | None,
        code: str,
    ) -> tuple[list[dict[str, Any]], str]:
        if abi:
            return abi, "provided"
        if standard:
            name = standard_name(standard)
            return standard_abi(name), f"standard:{name}"
        detected = detect_standard(code)
        if detected:
            return standard_abi(detected), f"detected:{detected}"
        raise ABIError("Could not determine the contract ABI; supply an ABI or a token standard")

"""Batch profiling of several contracts from one JSON configuration.

Config file layout::

    {
      "rpc": "https://dream-rpc.somnia.network",
      "contracts": [
        {"name": "Token", "address": "0x...", "abi": "abis/Token.json",
         "functions": ["transfer", "approve"], "runs": 3},
        {"address": "0x...", "abi": [...], "functions": ["*"], "paymaster": "0x..."}
      ]
    }

Contracts run a few at a time and share one result cache. Each finished
contract gets its own ``<name>_results.json``; the whole batch is written
to ``batch-results.json`` with summary totals.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from gasprofiler.core.config import Settings, get_settings
from gasprofiler.core.errors import GasProfilerError
from gasprofiler.core.types import ProfilingSession
from gasprofiler.ingestion.abi import load_abi
from gasprofiler.ingestion.rpc import TransactingNetwork
from gasprofiler.pipeline.profiler import GasProfiler
from gasprofiler.pipeline.quick import DEFAULT_MAX_FUNCTIONS, select_functions
from gasprofiler.reports.generator import ReportGenerator
from gasprofiler.simulator.cache import ResultCache

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL = 3
DEFAULT_BATCH_RUNS = 3
RESULTS_FILE = "batch-results.json"
ALL_FUNCTIONS = "*"


# ── Configuration ────────────────────────────────────────────────────────────


class BatchContract(BaseModel):
    """One contract entry of a batch config."""

    name: str = ""
    address: str
    # Inline ABI, or a path (relative to the config file) / inline JSON string
    abi: list[dict[str, Any]] | str
    functions: list[str] = Field(default_factory=lambda: [ALL_FUNCTIONS])
    args: dict[str, list[Any]] = Field(default_factory=dict)
    runs: int = Field(default=DEFAULT_BATCH_RUNS, ge=1)
    gasless: bool = True
    sponsor: str | None = Field(default=None, validation_alias=AliasChoices("sponsor", "paymaster"))
    sender: str | None = None

    @property
    def wants_all_functions(self) -> bool:
        return ALL_FUNCTIONS in self.functions


class BatchConfig(BaseModel):
    contracts: list[BatchContract] = Field(min_length=1)
    rpc: str | None = None


def load_batch_config(path: str | Path) -> BatchConfig:
    """Read and validate a batch config, filling default names.

    ABI paths are made absolute against the config file's directory; they
    are only read when their contract runs.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise GasProfilerError(f"Configuration file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise GasProfilerError(f"Invalid configuration: {exc}") from exc

    try:
        config = BatchConfig.model_validate(raw)
    except ValidationError as exc:
        raise GasProfilerError(f"Invalid configuration: {exc}") from exc

    for index, contract in enumerate(config.contracts, start=1):
        if not contract.name:
            contract.name = f"Contract_{index}"
        if isinstance(contract.abi, str) and not contract.abi.lstrip().startswith(("[", "{")):
            contract.abi = str(path.parent / contract.abi)

    logger.info("Loaded batch config with %d contract(s)", len(config.contracts))
    return config


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9_-]", "_", name.lower())


# ── Results ──────────────────────────────────────────────────────────────────


class FunctionSummary(BaseModel):
    signature: str
    runs: int
    average_gas: int
    min_gas: int
    max_gas: int
    mode: str


class ContractOutcome(BaseModel):
    """What happened to one contract of the batch."""

    index: int
    name: str
    address: str
    status: Literal["completed", "failed", "skipped"]
    functions: list[FunctionSummary] = Field(default_factory=list)
    skipped_functions: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None
    duration_ms: int = 0
    output_file: str | None = None


class BatchSummary(BaseModel):
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total_functions: int = 0
    total_gas_profiled: int = 0
    average_gas_per_function: int = 0


class BatchResult(BaseModel):
    started: datetime
    completed: datetime
    rpc: str = ""
    parallel: int
    continue_on_error: bool
    # True when a failure stopped the remaining contracts from running
    aborted: bool = False
    contracts: list[ContractOutcome] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def summarize_outcomes(outcomes: list[ContractOutcome]) -> BatchSummary:
    """Totals over completed contracts; gas is the sum of per-function averages."""
    completed = [o for o in outcomes if o.status == "completed"]
    averages = [f.average_gas for o in completed for f in o.functions]
    total = sum(averages)
    return BatchSummary(
        successful=len(completed),
        failed=sum(1 for o in outcomes if o.status == "failed"),
        skipped=sum(1 for o in outcomes if o.status == "skipped"),
        total_functions=len(averages),
        total_gas_profiled=total,
        average_gas_per_function=round(total / len(averages)) if averages else 0,
    )


def _function_summaries(session: ProfilingSession) -> list[FunctionSummary]:
    summaries = []
    for signature, profile in session.results.items():
        if profile.stats is None:
            continue
        summaries.append(
            FunctionSummary(
                signature=signature,
                runs=profile.stats.call_count,
                average_gas=profile.stats.avg,
                min_gas=profile.stats.min,
                max_gas=profile.stats.max,
                mode=profile.runs[0].result.mode.value if profile.runs else "unknown",
            )
        )
    return summaries


# ── Runner ───────────────────────────────────────────────────────────────────


class BatchProfiler:
    """Runs every contract of a :class:`BatchConfig` through one shared profiler."""

    def __init__(
        self,
        network: TransactingNetwork,
        settings: Settings | None = None,
        cache: ResultCache | None = None,
        profiler: GasProfiler | None = None,
        rpc_url: str = "",
    ) -> None:
        self._settings = settings or get_settings()
        self._cache = cache if cache is not None else ResultCache(
            ttl=self._settings.cache_ttl_seconds,
            max_entries=self._settings.cache_max_entries,
        )
        self._profiler = profiler or GasProfiler(
            network, cache=self._cache, settings=self._settings, rpc_url=rpc_url
        )
        self._rpc_url = rpc_url
        self._reporter = ReportGenerator()

    async def run(
        self,
        config: BatchConfig,
        output_dir: str | Path,
        parallel: int = DEFAULT_PARALLEL,
        continue_on_error: bool = False,
    ) -> BatchResult:
        """Profile all contracts, at most ``parallel`` at once.

        Without ``continue_on_error`` the first failure stops contracts that
        have not started yet; they are reported as skipped.
        """
        if parallel < 1:
            raise GasProfilerError("Parallelism must be at least 1", parallel=parallel)

        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        started = datetime.now(timezone.utc)
        semaphore = asyncio.Semaphore(parallel)
        stop = asyncio.Event()

        async def _limited(index: int, contract: BatchContract) -> ContractOutcome:
            async with semaphore:
                if stop.is_set():
                    return ContractOutcome(
                        index=index,
                        name=contract.name,
                        address=contract.address,
                        status="skipped",
                        error="Not run after an earlier failure",
                    )
                outcome = await self._profile_one(index, contract, out)
                if outcome.status == "failed" and not continue_on_error:
                    stop.set()
                return outcome

        logger.info("Batch of %d contract(s), %d at a time", len(config.contracts), parallel)
        outcomes = await asyncio.gather(
            *(_limited(index, contract) for index, contract in enumerate(config.contracts, start=1))
        )

        result = BatchResult(
            started=started,
            completed=datetime.now(timezone.utc),
            rpc=self._rpc_url,
            parallel=parallel,
            continue_on_error=continue_on_error,
            aborted=stop.is_set(),
            contracts=list(outcomes),
            summary=summarize_outcomes(list(outcomes)),
        )
        (out / RESULTS_FILE).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        logger.info(
            "Batch complete: %d succeeded, %d failed, %d skipped",
            result.summary.successful,
            result.summary.failed,
            result.summary.skipped,
        )
        return result

    async def _profile_one(self, index: int, contract: BatchContract, out: Path) -> ContractOutcome:
        started = time.monotonic()
        logger.info("[%d] Profiling %s at %s", index, contract.name, contract.address)
        try:
            abi = contract.abi if isinstance(contract.abi, list) else load_abi(contract.abi)
            functions = contract.functions
            if contract.wants_all_functions:
                # Up to ten state-changing functions; all of them when there are none
                functions = select_functions(abi, state_only=True, max_functions=DEFAULT_MAX_FUNCTIONS)
            session = await self._profiler.profile(
                contract.address,
                abi,
                functions=functions or None,
                args=contract.args,
                runs=contract.runs,
                gasless=contract.gasless,
                sponsor=contract.sponsor,
                sender=contract.sender,
            )
        except GasProfilerError as exc:
            logger.error("[%d] %s failed: %s", index, contract.name, exc.message)
            return ContractOutcome(
                index=index,
                name=contract.name,
                address=contract.address,
                status="failed",
                error=exc.message,
                error_code=exc.code,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        output_file = out / f"{sanitize_filename(contract.name)}_results.json"
        output_file.write_text(self._reporter.generate_json(session), encoding="utf-8")
        functions_done = _function_summaries(session)
        logger.info("[%d] %s completed (%d function(s))", index, contract.name, len(functions_done))
        return ContractOutcome(
            index=index,
            name=contract.name,
            address=contract.address,
            status="completed",
            functions=functions_done,
            skipped_functions=dict(session.skipped),
            duration_ms=int((time.monotonic() - started) * 1000),
            output_file=str(output_file),
        )

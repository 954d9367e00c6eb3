"""Shared enums and types used across the profiler."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class SimulationMode(str, enum.Enum):
    """Measurement strategy identifiers."""

    AUTO = "auto"
    ESTIMATE = "estimate"
    STATIC_CALL = "static_call"
    TRACE = "trace"
    DEBUG_MULTI = "debug_multi"
    SPONSORED = "sponsored"
    BYTECODE_HEURISTIC = "bytecode_heuristic"
    ACCESS_CONTROL_BYPASS = "access_control_bypass"
    MULTI_SENDER = "multi_sender"
    # Not executors: synthetic last-resort figure and a real mined transaction
    CONSERVATIVE = "conservative"
    TRANSACTION = "transaction"


class StateMutability(str, enum.Enum):
    """Solidity function state mutability."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @property
    def is_read_only(self) -> bool:
        return self in (StateMutability.PURE, StateMutability.VIEW)


class EfficiencyRating(str, enum.Enum):
    """Run-to-run gas consistency rating."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    VARIABLE = "variable"


# ── Measurement schemas ──────────────────────────────────────────────────────


class AttemptRecord(BaseModel):
    """One strategy attempt; ``error`` is None for the attempt that succeeded."""

    model_config = ConfigDict(frozen=True)

    mode: SimulationMode
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class MeasurementResult(BaseModel):
    """Outcome of measuring one call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    gas_used: int
    base_gas: int = 0
    sponsor_overhead: int = 0
    confidence: int = Field(ge=0, le=100)
    mode: SimulationMode
    used_fallback: bool = False
    attempts: tuple[AttemptRecord, ...] = ()
    exploratory: bool = False
    sender: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def failed_attempts(self) -> tuple[AttemptRecord, ...]:
        return tuple(a for a in self.attempts if a.failed)


class RunRecord(BaseModel):
    """One execution within a profiling session."""

    model_config = ConfigDict(frozen=True)

    run: int
    result: MeasurementResult
    args: list[Any] = Field(default_factory=list)
    timestamp: datetime
    from_cache: bool = False
    tx_hash: str | None = None
    block_number: int | None = None
    unit_price: int | None = None
    cost_wei: int | None = None
    cost: str | None = None
    sponsor: str | None = None

    @property
    def gas_used(self) -> int:
        return self.result.gas_used

    @property
    def has_cost(self) -> bool:
        return self.cost_wei is not None


class AggregatedStats(BaseModel):
    """Summary statistics for one function, derived from its run records."""

    model_config = ConfigDict(frozen=True)

    min: int
    max: int
    avg: int
    total: int
    call_count: int
    variance: float = 0.0
    stddev: float = 0.0
    efficiency: EfficiencyRating = EfficiencyRating.EXCELLENT
    min_cost: int | None = None
    max_cost: int | None = None
    avg_cost: int | None = None
    total_cost: int | None = None

    @property
    def has_cost(self) -> bool:
        return self.total_cost is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialise, leaving cost keys out entirely when there is no cost data."""
        data = self.model_dump(mode="json")
        if not self.has_cost:
            for key in ("min_cost", "max_cost", "avg_cost", "total_cost"):
                data.pop(key, None)
        return data


class FunctionProfile(BaseModel):
    """Run records and their aggregate for one function signature."""

    signature: str
    runs: list[RunRecord] = Field(default_factory=list)
    stats: AggregatedStats | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": [r.model_dump(mode="json") for r in self.runs],
            "aggregated": self.stats.to_dict() if self.stats else None,
        }


class ProfilingSession(BaseModel):
    """Top-level result of profiling one contract."""

    session_id: str
    rpc: str = ""
    address: str
    network: str = ""
    chain_id: int | None = None
    timestamp: datetime
    gasless: bool = True
    sponsor: str | None = None
    results: dict[str, FunctionProfile] = Field(default_factory=dict)
    # Signature -> reason, for functions whose calls could not be built
    skipped: dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "rpc": self.rpc,
            "address": self.address,
            "network": self.network,
            "chain_id": self.chain_id,
            "timestamp": self.timestamp.isoformat(),
            "gasless": self.gasless,
            "sponsor": self.sponsor,
            "results": {sig: fp.to_dict() for sig, fp in self.results.items()},
            "skipped": dict(self.skipped),
        }

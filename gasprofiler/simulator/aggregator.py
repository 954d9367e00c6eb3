"""Repeated-run statistics.

Runs are appended as immutable :class:`RunRecord` objects; every snapshot is
a fresh fold over the full list for that function. Nothing is patched
incrementally.
"""

from __future__ import annotations

import math
from collections import defaultdict

from gasprofiler.core.types import AggregatedStats, EfficiencyRating, FunctionProfile, RunRecord

# (max - min) / avg thresholds, checked in order
EFFICIENCY_THRESHOLDS: tuple[tuple[float, EfficiencyRating], ...] = (
    (0.05, EfficiencyRating.EXCELLENT),
    (0.15, EfficiencyRating.GOOD),
    (0.30, EfficiencyRating.FAIR),
)


def _rounded_mean(total: int, count: int) -> int:
    """Integer mean rounded half up."""
    return (2 * total + count) // (2 * count)


def efficiency_rating(min_gas: int, max_gas: int, avg_gas: int) -> EfficiencyRating:
    if avg_gas <= 0:
        return EfficiencyRating.EXCELLENT
    spread = (max_gas - min_gas) / avg_gas
    for threshold, rating in EFFICIENCY_THRESHOLDS:
        if spread < threshold:
            return rating
    return EfficiencyRating.VARIABLE


def aggregate(runs: list[RunRecord]) -> AggregatedStats:
    """Fold a non-empty run list into :class:`AggregatedStats`."""
    if not runs:
        raise ValueError("Cannot aggregate an empty run list")

    gas = [r.gas_used for r in runs]
    count = len(gas)
    total = sum(gas)
    avg = _rounded_mean(total, count)
    mean = total / count
    variance = sum((g - mean) ** 2 for g in gas) / count

    stats = {
        "min": min(gas),
        "max": max(gas),
        "avg": avg,
        "total": total,
        "call_count": count,
        "variance": variance,
        "stddev": math.sqrt(variance),
        "efficiency": efficiency_rating(min(gas), max(gas), avg),
    }

    costs = [r.cost_wei for r in runs if r.cost_wei is not None]
    if costs:
        stats.update(
            min_cost=min(costs),
            max_cost=max(costs),
            avg_cost=_rounded_mean(sum(costs), len(costs)),
            total_cost=sum(costs),
        )
    return AggregatedStats(**stats)


class RunAggregator:
    """Collects run records per function signature."""

    def __init__(self) -> None:
        self._runs: dict[str, list[RunRecord]] = defaultdict(list)

    def record(self, signature: str, run: RunRecord) -> None:
        self._runs[signature].append(run)

    def runs(self, signature: str) -> list[RunRecord]:
        return list(self._runs.get(signature, []))

    def snapshot(self, signature: str) -> AggregatedStats | None:
        runs = self._runs.get(signature)
        if not runs:
            return None
        return aggregate(runs)

    def profile(self, signature: str) -> FunctionProfile:
        return FunctionProfile(signature=signature, runs=self.runs(signature), stats=self.snapshot(signature))

    def profiles(self) -> dict[str, FunctionProfile]:
        return {sig: self.profile(sig) for sig in self._runs}

    @property
    def signatures(self) -> list[str]:
        return list(self._runs)

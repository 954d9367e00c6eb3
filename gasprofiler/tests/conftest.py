"""Shared fixtures for the gasprofiler test suite."""

from __future__ import annotations

from typing import Any

import pytest

from gasprofiler.core.config import Settings
from gasprofiler.ingestion.abi import FunctionSpec, abi_functions
from gasprofiler.simulator.executors import SimulationRequest
from gasprofiler.tests.fakes import CONTRACT, SAMPLE_ABI, FakeClock, FakeNetwork


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_abi() -> list[dict[str, Any]]:
    return [dict(item) for item in SAMPLE_ABI]


@pytest.fixture
def functions(sample_abi) -> dict[str, FunctionSpec]:
    return {f.name: f for f in abi_functions(sample_abi)}


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        run_delay_seconds=0,
        attempt_timeout_seconds=5,
        sender_address="",
        redis_url="redis://localhost:6379/15",
    )


@pytest.fixture
def make_request(functions):
    """Factory for :class:`SimulationRequest` against the sample contract."""

    def _make(
        name: str = "set",
        args: list[Any] | None = None,
        sender: str | None = None,
        sponsor: str | None = None,
        fee_paying: bool = False,
    ) -> SimulationRequest:
        spec = functions[name]
        if args is None:
            args = [42] if name == "set" else []
        return SimulationRequest.build(CONTRACT, spec, args, sender=sender, sponsor=sponsor, fee_paying=fee_paying)

    return _make

"""Core configuration for the gas profiler."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GASPROFILER_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "Gas Profiler"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # ── Network ──────────────────────────────────────────────────────────
    rpc_url: str = "https://dream-rpc.somnia.network"
    rpc_timeout_seconds: float = 30.0
    # Node-managed account used for real (fee-paying) runs
    sender_address: str = ""

    # ── Profiling ────────────────────────────────────────────────────────
    default_runs: int = 3
    run_delay_seconds: float = 0.1
    attempt_timeout_seconds: float = 30.0
    debug_multi_concurrent: bool = True
    receipt_timeout_seconds: float = 120.0
    receipt_poll_interval: float = 1.0

    # ── Result cache ─────────────────────────────────────────────────────
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 100

    # ── Sponsor (paymaster) ──────────────────────────────────────────────
    sponsor_validation_gas: int = 45_000
    sponsor_post_op_gas: int = 15_000
    sponsor_storage_gas: int = 5_000
    sponsor_complex_gas: int = 10_000
    sponsor_complex_code_size: int = 10_000
    sponsor_default_overhead: int = 50_000

    # ── Session store (Redis) ────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    session_store_prefix: str = "gasprof"
    session_store_ttl: int = 86_400

    # ── Display ──────────────────────────────────────────────────────────
    native_currency: str = "STT"
    cost_display_places: int = 8


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()

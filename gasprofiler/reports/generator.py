"""Report generation for profiling sessions (JSON, CSV, Markdown)."""

from __future__ import annotations

import csv
import hashlib
import io
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from gasprofiler.core.config import get_settings
from gasprofiler.core.types import ProfilingSession
from gasprofiler.simulator.cost import format_wei

TEMPLATE_DIR = Path(__file__).parent / "templates"

SORT_KEYS = ("avg", "min", "max", "total", "name")

CSV_COLUMNS = [
    "function",
    "run",
    "args_json",
    "gas_used",
    "mode",
    "confidence",
    "used_fallback",
    "from_cache",
    "tx_hash",
    "block_number",
    "rpc",
]
CSV_COST_COLUMNS = ["cost", "cost_wei", "gas_price_wei"]


def _as_dict(session: ProfilingSession | dict[str, Any]) -> dict[str, Any]:
    return session.to_dict() if isinstance(session, ProfilingSession) else session


def sorted_results(data: dict[str, Any], sort_by: str = "avg") -> list[tuple[str, dict[str, Any]]]:
    """Function results ordered by an aggregate (descending) or by name."""
    items = [(sig, r) for sig, r in data.get("results", {}).items() if r.get("aggregated")]
    if sort_by == "name":
        return sorted(items, key=lambda item: item[0])
    return sorted(items, key=lambda item: item[1]["aggregated"].get(sort_by, 0), reverse=True)


def session_has_cost(data: dict[str, Any]) -> bool:
    return any("total_cost" in r["aggregated"] for _, r in sorted_results(data))


class ReportGenerator:
    """Render a profiling session for people and machines.

    Accepts either a live :class:`ProfilingSession` or the dict form that
    the session store hands back.
    """

    def __init__(self, currency: str | None = None, places: int | None = None) -> None:
        settings = get_settings()
        self.currency = currency or settings.native_currency
        self.places = places if places is not None else settings.cost_display_places
        self._jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._jinja_env.filters["thousands"] = lambda n: f"{n:,}" if isinstance(n, int) else n
        self._jinja_env.filters["cost"] = self.format_cost

    def format_cost(self, wei: int | None) -> str:
        return format_wei(wei, self.places) if wei is not None else "N/A"

    def generate_json(self, session: ProfilingSession | dict[str, Any]) -> str:
        """Machine-readable JSON with a verification hash over the content."""
        report = {
            "version": "1.0",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            **_as_dict(session),
        }

        content = json.dumps(report, indent=2, default=str)

        # Add verification hash
        report["verification_hash"] = hashlib.sha256(content.encode()).hexdigest()

        return json.dumps(report, indent=2, default=str)

    def generate_csv(self, session: ProfilingSession | dict[str, Any]) -> str:
        """One row per run; cost columns only when some run carries cost."""
        data = _as_dict(session)
        results = data.get("results", {})
        has_cost = any(run.get("cost_wei") is not None for r in results.values() for run in r.get("runs", []))

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_COLUMNS + (CSV_COST_COLUMNS if has_cost else []))

        for signature, result in results.items():
            for run in result.get("runs", []):
                measurement = run.get("result", {})
                row = [
                    signature,
                    run.get("run"),
                    json.dumps(run.get("args", []), default=str),
                    measurement.get("gas_used"),
                    measurement.get("mode"),
                    measurement.get("confidence"),
                    measurement.get("used_fallback"),
                    run.get("from_cache"),
                    run.get("tx_hash") or "",
                    run.get("block_number") or "",
                    data.get("rpc", ""),
                ]
                if has_cost:
                    row += [run.get("cost") or "", run.get("cost_wei") or "", run.get("unit_price") or ""]
                writer.writerow(row)

        return buffer.getvalue()

    def generate_markdown(self, session: ProfilingSession | dict[str, Any], sort_by: str = "avg") -> str:
        data = _as_dict(session)
        rows = sorted_results(data, sort_by)
        total_gas = sum(r["aggregated"]["total"] for _, r in rows)
        total_calls = sum(r["aggregated"]["call_count"] for _, r in rows)
        template = self._jinja_env.get_template("report.md.j2")
        return template.render(
            session=data,
            rows=rows,
            has_cost=session_has_cost(data),
            currency=self.currency,
            sort_by=sort_by,
            total_gas=total_gas,
            total_calls=total_calls,
            avg_gas=round(total_gas / total_calls) if total_calls else 0,
        )

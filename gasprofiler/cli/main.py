"""gasprofiler CLI: measure and report gas usage of deployed contract functions.

Usage:
    gasprofiler profile --address <addr> --abi <file> --functions <sig>...
    gasprofiler quick-analyze --address <addr> [--abi <file> | --standard ERC20]
    gasprofiler batch-profile --config <batch.json>
    gasprofiler report <session-id>     Render a stored session
    gasprofiler config                  Show current configuration
    gasprofiler version                 Print version

Examples:
    gasprofiler profile -a 0x1234...abcd --abi Token.json -F "transfer(address,uint256)" \\
        --args '["0x742d35Cc6634C0532925a3b844Bc454e4438f44e", 1000]' --runs 5
    gasprofiler profile -a 0x1234...abcd --abi Token.json -F balanceOf --format csv -o gas.csv
    gasprofiler profile -a 0x1234...abcd --abi Token.json -F mint --real --sender 0xabc...
    gasprofiler report 6f1c... --format markdown -o report.md
    gasprofiler quick-analyze -a 0x1234...abcd --standard ERC20 --quick
    gasprofiler batch-profile --config batch.json --parallel 4 --continue-on-error
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from gasprofiler.core.errors import GasProfilerError
from gasprofiler.core.types import SimulationMode

VERSION = "1.0.0"

# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

_EFFICIENCY_COLOR = {
    "excellent": _GREEN,
    "good": _CYAN,
    "fair": _YELLOW,
    "variable": _RED,
}


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = rf"""
{_BOLD}{_CYAN}  __ _  __ _ ___ _ __  _ __ ___  / _(_) | ___ _ __
 / _` |/ _` / __| '_ \| '__/ _ \| |_| | |/ _ \ '__|
| (_| | (_| \__ \ |_) | | | (_) |  _| | |  __/ |
 \__, |\__,_|___/ .__/|_|  \___/|_| |_|_|\___|_|
 |___/          |_|{_RESET}
  {_DIM}Contract gas profiler, v{VERSION}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gasprofiler",
        description="gasprofiler: measure gas usage of deployed contract functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── profile ──────────────────────────────────────────────────────────────
    profile_p = sub.add_parser("profile", help="Profile functions of a deployed contract")
    profile_p.add_argument("--address", "-a", required=True, help="Contract address")
    profile_p.add_argument("--abi", required=True, help="ABI JSON file (or inline JSON array)")
    profile_p.add_argument(
        "--functions",
        "-F",
        nargs="+",
        default=[],
        help="Function signatures or names to profile (default: every ABI function)",
    )
    profile_p.add_argument(
        "--args",
        nargs="+",
        default=[],
        help="One JSON array of arguments per function, in the same order as --functions",
    )
    profile_p.add_argument("--runs", "-n", type=int, help="Runs per function (default from settings)")
    profile_p.add_argument("--rpc", help="JSON-RPC endpoint (default from settings)")
    profile_p.add_argument(
        "--real",
        action="store_true",
        help="Send real transactions from the node-managed sender instead of simulating",
    )
    profile_p.add_argument("--sponsor", help="Fee sponsor (paymaster) contract address")
    profile_p.add_argument("--sender", help="Sender address for calls")
    profile_p.add_argument(
        "--mode",
        default=SimulationMode.AUTO.value,
        choices=[
            m.value
            for m in SimulationMode
            if m not in (SimulationMode.CONSERVATIVE, SimulationMode.TRANSACTION)
        ],
        help="Primary measurement strategy (default: auto)",
    )
    profile_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json", "csv", "markdown"],
        help="Output format (default: table)",
    )
    profile_p.add_argument("--output", "-o", help="Write output to file instead of stdout")
    profile_p.add_argument(
        "--sort-by",
        default="avg",
        choices=["avg", "min", "max", "total", "name"],
        help="Table ordering (default: avg)",
    )
    profile_p.add_argument("--no-advisor", action="store_true", help="Do not generate missing arguments")
    profile_p.add_argument("--store", action="store_true", help="Persist the session to Redis")

    # ── quick-analyze ────────────────────────────────────────────────────────
    quick_p = sub.add_parser("quick-analyze", help="Summarise a contract and profile a few of its functions")
    quick_p.add_argument("--address", "-a", required=True, help="Contract address")
    abi_source = quick_p.add_mutually_exclusive_group()
    abi_source.add_argument("--abi", help="ABI JSON file (or inline JSON array)")
    abi_source.add_argument("--standard", help="Use a standard interface ABI: ERC20, ERC721 or ERC1155")
    quick_p.add_argument("--functions", "-F", nargs="+", default=[], help="Profile exactly these functions")
    only = quick_p.add_mutually_exclusive_group()
    only.add_argument("--view-only", action="store_true", help="Profile only view/pure functions")
    only.add_argument("--state-only", action="store_true", help="Profile only state-changing functions")
    quick_p.add_argument("--max-functions", type=int, help="Maximum number of functions to profile (default: 10)")
    quick_p.add_argument("--quick", action="store_true", help="At most 5 functions, 2 runs each")
    quick_p.add_argument("--runs", "-n", type=int, help="Runs per function")
    quick_p.add_argument("--rpc", help="JSON-RPC endpoint (default from settings)")
    quick_p.add_argument("--format", "-f", default="table", choices=["table", "json"], help="Output format")
    quick_p.add_argument("--output", "-o", help="Write JSON output to file")

    # ── batch-profile ────────────────────────────────────────────────────────
    batch_p = sub.add_parser("batch-profile", help="Profile every contract listed in a batch config")
    batch_p.add_argument("--config", "-c", required=True, help="Batch configuration JSON file")
    batch_p.add_argument("--parallel", "-p", type=int, default=3, help="Contracts profiled at once (default: 3)")
    batch_p.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep going after a contract fails (default: stop starting new ones)",
    )
    batch_p.add_argument("--output-dir", default="./batch-results", help="Directory for result files")
    batch_p.add_argument("--rpc", help="JSON-RPC endpoint (default: config file, then settings)")

    # ── report ───────────────────────────────────────────────────────────────
    report_p = sub.add_parser("report", help="Render a stored profiling session")
    report_p.add_argument("session_id", help="Session ID (or 'latest')")
    report_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json", "csv", "markdown"],
        help="Report format (default: table)",
    )
    report_p.add_argument("--output", "-o", help="Output file path")
    report_p.add_argument("--sort-by", default="avg", choices=["avg", "min", "max", "total", "name"])

    # ── config / version ─────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")
    sub.add_parser("version", help="Print version")

    return parser


# ── Output ───────────────────────────────────────────────────────────────────


def _fmt_int(value: Any) -> str:
    return f"{value:,}" if isinstance(value, int) else str(value)


def _print_table(data: dict[str, Any], sort_by: str = "avg", quiet: bool = False) -> None:
    """Pretty-print a session's aggregates as a coloured table."""
    from gasprofiler.reports.generator import ReportGenerator, session_has_cost, sorted_results

    rows = sorted_results(data, sort_by)
    has_cost = session_has_cost(data)
    reporter = ReportGenerator()

    if not quiet:
        print(f"\n{_BOLD}Gas profiling complete{_RESET} ({data.get('session_id', '')})")
        print(f"  Network: {_c(data.get('network') or 'unknown', _CYAN)}")
        print(f"  Contract: {_c(data.get('address', ''), _CYAN)}")
        mode = "gasless simulation" if data.get("gasless", True) else "real transactions"
        print(f"  Mode: {mode}  |  Sorted by: {sort_by}\n")

    if not rows:
        print(_c("  No functions were profiled.", _YELLOW))
        _print_skipped(data)
        return

    headers = ["Function", "Runs", "Min Gas", "Max Gas", "Avg Gas", "Total Gas", "Efficiency"]
    if has_cost:
        headers += [f"Avg Cost ({reporter.currency})", f"Total Cost ({reporter.currency})"]

    table: list[list[str]] = []
    for signature, result in rows:
        agg = result["aggregated"]
        row = [
            signature,
            str(agg["call_count"]),
            _fmt_int(agg["min"]),
            _fmt_int(agg["max"]),
            _fmt_int(agg["avg"]),
            _fmt_int(agg["total"]),
            agg["efficiency"],
        ]
        if has_cost:
            row += [reporter.format_cost(agg.get("avg_cost")), reporter.format_cost(agg.get("total_cost"))]
        table.append(row)

    widths = [max(len(h), *(len(r[i]) for r in table)) for i, h in enumerate(headers)]
    print("  " + "  ".join(_c(h.ljust(w), _BOLD) for h, w in zip(headers, widths)))
    print("  " + "  ".join(_c("-" * w, _DIM) for w in widths))
    for row in table:
        cells = []
        for i, (cell, w) in enumerate(zip(row, widths)):
            text = cell.ljust(w) if i in (0, 6) else cell.rjust(w)
            if i == 6:
                text = _c(text, _EFFICIENCY_COLOR.get(cell, ""))
            cells.append(text)
        print("  " + "  ".join(cells))

    if quiet:
        _print_skipped(data)
        return

    total_gas = sum(r["aggregated"]["total"] for _, r in rows)
    total_calls = sum(r["aggregated"]["call_count"] for _, r in rows)
    print(f"\n  {_BOLD}Summary{_RESET}")
    print(f"  Functions profiled: {len(rows)}")
    print(f"  Total calls: {total_calls}")
    print(f"  Total gas consumed: {_fmt_int(total_gas)}")
    if total_calls:
        print(f"  Average per call: {_fmt_int(round(total_gas / total_calls))}")

    for signature, result in rows:
        runs = result.get("runs") or []
        if not runs:
            continue
        last = runs[-1]["result"]
        if last.get("used_fallback") or last.get("exploratory") or last.get("confidence", 100) < 50:
            note = f"via {last['mode']}, confidence {last['confidence']}"
            if last.get("exploratory"):
                note += f", exploratory sender {last.get('sender')}"
            print(_c(f"  ! {signature}: {note}", _YELLOW))
    _print_skipped(data)
    print()


def _print_skipped(data: dict[str, Any]) -> None:
    for signature, reason in (data.get("skipped") or {}).items():
        print(_c(f"  ! {signature} skipped: {reason}", _RED))


def _render(data: dict[str, Any], fmt: str, sort_by: str) -> str | None:
    from gasprofiler.reports.generator import ReportGenerator

    reporter = ReportGenerator()
    if fmt == "json":
        return reporter.generate_json(data)
    if fmt == "csv":
        return reporter.generate_csv(data)
    if fmt == "markdown":
        return reporter.generate_markdown(data, sort_by=sort_by)
    return None


def _emit(data: dict[str, Any], args: argparse.Namespace) -> None:
    if args.format == "table" and not args.output:
        _print_table(data, sort_by=args.sort_by, quiet=args.quiet)
        return

    output = _render(data, args.format, args.sort_by)
    if output is None:
        # Tables are terminal-only; files get JSON
        output = _render(data, "json", args.sort_by)

    if args.output:
        Path(args.output).write_text(output or "")
        if not args.quiet:
            print(f"  Written to {_c(args.output, _CYAN)}")
    else:
        print(output)


# ── Profile command ──────────────────────────────────────────────────────────


def _collect_args(functions: list[str], raw_args: list[str]) -> dict[str, list[Any]]:
    from gasprofiler.ingestion.abi import parse_args

    if raw_args and len(raw_args) > len(functions):
        raise GasProfilerError(
            f"Got {len(raw_args)} argument sets for {len(functions)} functions"
        )
    return {fn: parse_args(raw) for fn, raw in zip(functions, raw_args)}


async def _run_profile(args: argparse.Namespace) -> int:
    """Profile the requested functions and print results."""
    from gasprofiler.core.config import get_settings
    from gasprofiler.core.store import SessionStore
    from gasprofiler.ingestion.abi import load_abi
    from gasprofiler.ingestion.rpc import Web3Network
    from gasprofiler.pipeline.profiler import GasProfiler

    settings = get_settings()
    rpc_url = args.rpc or settings.rpc_url

    try:
        abi = load_abi(args.abi)
        call_args = _collect_args(args.functions, args.args)
    except GasProfilerError as exc:
        print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
        return 1

    if not args.quiet:
        kind = "real transactions" if args.real else "gasless simulation"
        print(f"  Profiling {_c(args.address, _CYAN)} via {rpc_url} ({kind})…", file=sys.stderr)

    store = SessionStore() if args.store else None
    async with Web3Network(rpc_url) as network:
        profiler = GasProfiler(network, store=store, settings=settings, rpc_url=rpc_url)
        try:
            session = await profiler.profile(
                address=args.address,
                abi=abi,
                functions=args.functions or None,
                args=call_args,
                runs=args.runs,
                gasless=not args.real,
                sponsor=args.sponsor,
                sender=args.sender,
                mode=SimulationMode(args.mode),
                use_advisor=not args.no_advisor,
            )
        except GasProfilerError as exc:
            print(_c(f"\nProfiling failed [{exc.code}]: {exc.message}", _RED), file=sys.stderr)
            return 1
        finally:
            if store is not None:
                await store.close()

    _emit(session.to_dict(), args)
    if store is not None and not args.quiet:
        print(f"  Session id: {_c(session.session_id, _CYAN)}", file=sys.stderr)
    return 0


# ── Quick-analyze command ────────────────────────────────────────────────────


def _print_contract_summary(contract: dict[str, Any], abi_source: str) -> None:
    print(f"\n{_BOLD}Contract analysis{_RESET} (ABI: {abi_source})")
    print(f"  Type: {_c(contract['contract_type'], _CYAN)}")
    print(f"  Complexity: {contract['complexity']}")
    print(f"  Total functions: {contract['total_functions']}")
    print(f"    View/pure: {contract['view_functions']}")
    print(f"    State-changing: {contract['state_changing_functions']}")
    print(f"  Events: {contract['events']}")
    print(f"  Bytecode: {_fmt_int(contract['bytecode_size'])} bytes")


async def _run_quick_analyze(args: argparse.Namespace) -> int:
    """Summarise the contract, then profile a handful of its functions gaslessly."""
    from gasprofiler.core.config import get_settings
    from gasprofiler.ingestion.abi import load_abi
    from gasprofiler.ingestion.rpc import Web3Network
    from gasprofiler.pipeline.quick import QuickAnalyzer

    settings = get_settings()
    rpc_url = args.rpc or settings.rpc_url

    try:
        abi = load_abi(args.abi) if args.abi else None
    except GasProfilerError as exc:
        print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"  Analysing {_c(args.address, _CYAN)} via {rpc_url}…", file=sys.stderr)

    async with Web3Network(rpc_url) as network:
        analyzer = QuickAnalyzer(network, settings=settings, rpc_url=rpc_url)
        try:
            analysis = await analyzer.analyze(
                args.address,
                abi=abi,
                standard=args.standard,
                functions=args.functions or None,
                view_only=args.view_only,
                state_only=args.state_only,
                max_functions=args.max_functions,
                runs=args.runs,
                quick=args.quick,
            )
        except GasProfilerError as exc:
            print(_c(f"\nQuick analysis failed [{exc.code}]: {exc.message}", _RED), file=sys.stderr)
            return 1

    data = analysis.to_dict()
    if args.output:
        Path(args.output).write_text(json.dumps(data, indent=2))
        if not args.quiet:
            print(f"  Written to {_c(args.output, _CYAN)}")
        return 0
    if args.format == "json":
        print(json.dumps(data, indent=2))
        return 0

    _print_contract_summary(data["contract"], data["abi_source"])
    if data["session"] is None:
        print(_c("\n  No suitable functions found for profiling.", _YELLOW))
        return 0
    _print_table(data["session"], quiet=args.quiet)
    return 0


# ── Batch-profile command ────────────────────────────────────────────────────

_STATUS_COLOR = {"completed": _GREEN, "failed": _RED, "skipped": _YELLOW}


def _print_batch_summary(data: dict[str, Any], results_path: Path) -> None:
    print(f"\n{_BOLD}Batch profiling complete{_RESET}")
    for contract in data["contracts"]:
        status = contract["status"]
        line = f"  [{contract['index']}] {contract['name']}: {_c(status, _STATUS_COLOR[status])}"
        if status == "completed":
            line += f" ({len(contract['functions'])} function(s))"
        elif contract.get("error"):
            line += f" ({contract['error']})"
        print(line)

    summary = data["summary"]
    print(f"\n  {_BOLD}Summary{_RESET}")
    print(f"  Successful: {summary['successful']}")
    print(f"  Failed: {summary['failed']}")
    if summary["skipped"]:
        print(f"  Not run: {summary['skipped']}")
    print(f"  Total functions: {summary['total_functions']}")
    print(f"  Total gas profiled: {_fmt_int(summary['total_gas_profiled'])}")
    print(f"  Average gas per function: {_fmt_int(summary['average_gas_per_function'])}")
    print(f"  Results: {_c(str(results_path), _CYAN)}\n")


async def _run_batch(args: argparse.Namespace) -> int:
    """Profile every contract of a batch config; exit 1 when a failure stopped the batch."""
    from gasprofiler.core.config import get_settings
    from gasprofiler.ingestion.rpc import Web3Network
    from gasprofiler.pipeline.batch import RESULTS_FILE, BatchProfiler, load_batch_config

    settings = get_settings()
    try:
        config = load_batch_config(args.config)
    except GasProfilerError as exc:
        print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
        return 1

    rpc_url = args.rpc or config.rpc or settings.rpc_url
    if not args.quiet:
        print(
            f"  Batch of {len(config.contracts)} contract(s) via {rpc_url}, {args.parallel} at a time…",
            file=sys.stderr,
        )

    async with Web3Network(rpc_url) as network:
        batch = BatchProfiler(network, settings=settings, rpc_url=rpc_url)
        try:
            result = await batch.run(
                config,
                args.output_dir,
                parallel=args.parallel,
                continue_on_error=args.continue_on_error,
            )
        except GasProfilerError as exc:
            print(_c(f"\nBatch profiling failed [{exc.code}]: {exc.message}", _RED), file=sys.stderr)
            return 1

    if not args.quiet:
        _print_batch_summary(result.to_dict(), Path(args.output_dir) / RESULTS_FILE)
    return 1 if result.summary.failed and not args.continue_on_error else 0


# ── Report command ───────────────────────────────────────────────────────────


async def _run_report(args: argparse.Namespace) -> int:
    """Render a session previously persisted with ``profile --store``."""
    from gasprofiler.core.store import SessionStore

    store = SessionStore()
    try:
        session_id = args.session_id
        if session_id == "latest":
            # "latest" is the stored session with the newest timestamp
            loaded = [await store.load(sid) for sid in await store.list_sessions()]
            candidates = [s for s in loaded if s]
            data = max(candidates, key=lambda s: s.get("timestamp", ""), default=None)
        else:
            data = await store.load(session_id)
    finally:
        await store.close()

    if data is None:
        print(_c(f"Session '{args.session_id}' not found (is Redis reachable?)", _YELLOW), file=sys.stderr)
        return 1

    _emit(data, args)
    return 0


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings (redacted)."""
    from gasprofiler.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}gasprofiler configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        # Redact secrets
        if any(kw in field_name for kw in ("password", "secret", "key", "token")):
            val = "****" if val else "(not set)"
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        print(f"gasprofiler {VERSION}")
        return 0

    from gasprofiler.core.config import get_settings
    from gasprofiler.core.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if not args.no_banner and not args.quiet:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        return _run_config()

    if args.command == "profile":
        return asyncio.run(_run_profile(args))

    if args.command == "quick-analyze":
        return asyncio.run(_run_quick_analyze(args))

    if args.command == "batch-profile":
        return asyncio.run(_run_batch(args))

    if args.command == "report":
        return asyncio.run(_run_report(args))

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Load contract ABIs and encode function calls."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eth_abi import encode
from eth_utils import is_hex_address, keccak, to_bytes, to_checksum_address

from gasprofiler.core.errors import ABIError
from gasprofiler.core.types import StateMutability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionSpec:
    """A callable ABI function entry with its canonical types."""

    name: str
    input_types: tuple[str, ...] = ()
    input_names: tuple[str, ...] = ()
    output_types: tuple[str, ...] = ()
    mutability: StateMutability = StateMutability.NONPAYABLE

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> str:
        return "0x" + keccak(text=self.signature)[:4].hex()

    @property
    def param_count(self) -> int:
        return len(self.input_types)

    def encode_args(self, args: list[Any]) -> bytes:
        """ABI-encode ``args`` (without selector), coercing loose values first."""
        if len(args) != len(self.input_types):
            raise ABIError(
                f"Function '{self.signature}' expects {len(self.input_types)} arguments, got {len(args)}"
            )
        try:
            values = [coerce_value(t, v) for t, v in zip(self.input_types, args)]
            return encode(list(self.input_types), values)
        except ABIError:
            raise
        except Exception as exc:
            raise ABIError(f"Cannot encode arguments for {self.signature}: {exc}") from exc

    def encode_call(self, args: list[Any]) -> str:
        """Full calldata: selector followed by encoded arguments."""
        return self.selector + self.encode_args(args).hex()


# ── ABI loading ──────────────────────────────────────────────────────────────


def load_abi(abi_input: str) -> list[dict[str, Any]]:
    """Load an ABI from inline JSON or a file path.

    Build artifacts (a JSON object with an ``abi`` key) are unwrapped.
    """
    text = abi_input.strip()
    try:
        if text.startswith(("[", "{")):
            abi = json.loads(text)
        else:
            abi = json.loads(Path(text).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ABIError(f"Failed to load ABI: {exc}") from exc

    if isinstance(abi, dict) and isinstance(abi.get("abi"), list):
        abi = abi["abi"]
    if not isinstance(abi, list):
        raise ABIError("ABI must be an array")

    logger.info("ABI loaded (%d entries)", len(abi))
    return abi


def _canonical_type(param: dict[str, Any]) -> str:
    abi_type = param.get("type", "")
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def _mutability(item: dict[str, Any]) -> StateMutability:
    raw = item.get("stateMutability")
    if raw:
        try:
            return StateMutability(raw)
        except ValueError:
            return StateMutability.NONPAYABLE
    # Pre-0.5 ABIs
    if item.get("constant"):
        return StateMutability.VIEW
    if item.get("payable"):
        return StateMutability.PAYABLE
    return StateMutability.NONPAYABLE


def function_from_abi(item: dict[str, Any]) -> FunctionSpec:
    inputs = item.get("inputs", [])
    return FunctionSpec(
        name=item["name"],
        input_types=tuple(_canonical_type(i) for i in inputs),
        input_names=tuple(i.get("name", "") for i in inputs),
        output_types=tuple(_canonical_type(o) for o in item.get("outputs", [])),
        mutability=_mutability(item),
    )


def abi_functions(abi: list[dict[str, Any]]) -> list[FunctionSpec]:
    return [function_from_abi(item) for item in abi if item.get("type") == "function"]


def resolve_functions(abi: list[dict[str, Any]], signatures: list[str]) -> list[FunctionSpec]:
    """Match each requested signature (full or bare name) against the ABI."""
    available = abi_functions(abi)
    resolved: list[FunctionSpec] = []
    for sig in signatures:
        wanted = sig.replace(" ", "")
        match = next(
            (f for f in available if f.signature == wanted or f.name == wanted),
            None,
        )
        if match is None:
            raise ABIError(f"Function '{sig}' not found in ABI")
        resolved.append(match)
    return resolved


# ── Argument handling ────────────────────────────────────────────────────────


def parse_args(raw: str | list[Any] | None) -> list[Any]:
    """Parse one function's arguments from a JSON array string."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return [raw]
    return parsed if isinstance(parsed, list) else [parsed]


def split_tuple_types(abi_type: str) -> list[str]:
    """Split ``(a,(b,c),d)`` into its top-level component types."""
    body = abi_type[1:-1]
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in body:
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        current += ch
    if current:
        parts.append(current)
    return parts


def coerce_value(abi_type: str, value: Any) -> Any:
    """Turn CLI/JSON-friendly values into what eth-abi expects."""
    if abi_type.endswith("]"):
        base = abi_type[: abi_type.rindex("[")]
        if isinstance(value, str):
            value = json.loads(value)
        return [coerce_value(base, v) for v in value]

    if abi_type.startswith("("):
        if isinstance(value, str):
            value = json.loads(value)
        return tuple(coerce_value(t, v) for t, v in zip(split_tuple_types(abi_type), value))

    if abi_type.startswith(("uint", "int")):
        if isinstance(value, str):
            return int(value, 0)
        return int(value)

    if abi_type == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)

    if abi_type == "address":
        if not isinstance(value, str) or not is_hex_address(value):
            raise ABIError(f"Invalid address argument: {value!r}")
        return to_checksum_address(value)

    if abi_type.startswith("bytes"):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str) and value.startswith(("0x", "0X")):
            return to_bytes(hexstr=value)
        return str(value).encode()

    if abi_type == "string":
        return str(value)

    return value

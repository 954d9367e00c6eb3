"""Bytecode and name heuristics: last-resort gas figures.

Neither heuristic here is a correctness mechanism. The bytecode estimate only
looks at which expensive opcodes a contract contains and how many backward
jumps (loop candidates) it has; the name table maps substrings of a function
name to a typical cost. Both feed low-confidence results that the fallback
orchestrator only reaches after every dynamic strategy failed.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


# ── EVM Opcode Table ─────────────────────────────────────────────────────────

class Opcode(Enum):
    """EVM opcodes the heuristic cares about."""
    STOP = 0x00
    SHA3 = 0x20
    SLOAD = 0x54
    SSTORE = 0x55
    JUMP = 0x56
    JUMPI = 0x57
    JUMPDEST = 0x5B
    PUSH0 = 0x5F
    PUSH1 = 0x60
    PUSH2 = 0x61
    PUSH4 = 0x63
    PUSH32 = 0x7F
    LOG0 = 0xA0
    LOG4 = 0xA4
    CREATE = 0xF0
    CALL = 0xF1
    CALLCODE = 0xF2
    RETURN = 0xF3
    DELEGATECALL = 0xF4
    CREATE2 = 0xF5
    STATICCALL = 0xFA
    REVERT = 0xFD
    INVALID = 0xFE
    SELFDESTRUCT = 0xFF


OPCODE_NAMES: dict[int, str] = {op.value: op.name for op in Opcode}
for _i in range(0x60, 0x80):
    OPCODE_NAMES[_i] = f"PUSH{_i - 0x5F}"
for _i in range(0xA0, 0xA5):
    OPCODE_NAMES[_i] = f"LOG{_i - 0xA0}"

# Complexity weight added once if the opcode appears anywhere
EXPENSIVE_OPCODE_WEIGHTS: dict[str, float] = {
    "SSTORE": 3,
    "CALL": 2,
    "CREATE": 5,
    "CREATE2": 5,
    "DELEGATECALL": 4,
}
LOOP_WEIGHT = 0.5
MAX_COMPLEXITY = 10.0

BASE_TX_GAS = 21_000
GAS_PER_COMPLEXITY = 5_000
GAS_PER_ARGUMENT = 1_000

# Known-imprecise: substring of function name -> typical gas. First match wins.
NAME_GAS_TABLE: tuple[tuple[str, int], ...] = (
    ("transfer", 65_000),
    ("approve", 45_000),
    ("swap", 180_000),
    ("mint", 80_000),
    ("burn", 60_000),
    ("withdraw", 70_000),
    ("deposit", 75_000),
    ("execute", 120_000),
    ("create", 100_000),
    ("update", 55_000),
    ("remove", 65_000),
    ("delete", 45_000),
    ("add", 70_000),
    ("set", 50_000),
    ("get", 25_000),
    ("view", 25_000),
    ("read", 25_000),
)
DEFAULT_NAME_GAS = 80_000


# ── Disassembly ──────────────────────────────────────────────────────────────

@dataclass
class Instruction:
    """A single disassembled EVM instruction."""
    offset: int
    opcode: int
    name: str
    operand: int = 0


def normalize_bytecode(bytecode: str | bytes) -> bytes:
    """Hex string (0x-prefixed or not) or raw bytes to raw bytes."""
    if isinstance(bytecode, bytes):
        return bytecode
    bc = bytecode.strip()
    if bc.startswith(("0x", "0X")):
        bc = bc[2:]
    try:
        return bytes.fromhex(bc)
    except ValueError:
        logger.error("Invalid hex bytecode")
        return b""


def disassemble(bytecode: bytes) -> list[Instruction]:
    instructions: list[Instruction] = []
    i = 0
    while i < len(bytecode):
        opcode = bytecode[i]
        name = OPCODE_NAMES.get(opcode, f"OP_0x{opcode:02x}")
        if 0x60 <= opcode <= 0x7F:
            n_bytes = opcode - 0x5F
            operand = bytecode[i + 1: i + 1 + n_bytes]
            instructions.append(
                Instruction(i, opcode, name, int.from_bytes(operand, "big") if operand else 0)
            )
            i += 1 + n_bytes
        else:
            instructions.append(Instruction(i, opcode, name))
            i += 1
    return instructions


# ── Analysis ─────────────────────────────────────────────────────────────────

@dataclass
class BytecodeProfile:
    """What the heuristic saw in a contract's deployed code."""
    code_size: int = 0
    instruction_count: int = 0
    opcode_counts: dict[str, int] = field(default_factory=dict)
    loop_candidates: int = 0
    selector_found: bool = False
    complexity: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "code_size": self.code_size,
            "instruction_count": self.instruction_count,
            "expensive_opcodes": {
                k: v for k, v in self.opcode_counts.items() if k in EXPENSIVE_OPCODE_WEIGHTS
            },
            "loop_candidates": self.loop_candidates,
            "selector_found": self.selector_found,
            "complexity": self.complexity,
        }


def contains_selector(instructions: list[Instruction], selector: str) -> bool:
    wanted = int(selector, 16)
    return any(inst.opcode == Opcode.PUSH4.value and inst.operand == wanted for inst in instructions)


def count_backward_jumps(instructions: list[Instruction]) -> int:
    """JUMP/JUMPI whose pushed target lies before it: rough loop count."""
    loops = 0
    for prev, inst in zip(instructions, instructions[1:]):
        if inst.opcode in (Opcode.JUMP.value, Opcode.JUMPI.value) and 0x60 <= prev.opcode <= 0x7F:
            if prev.operand < inst.offset:
                loops += 1
    return loops


def analyze_bytecode(bytecode: str | bytes, selector: str | None = None) -> BytecodeProfile:
    raw = normalize_bytecode(bytecode)
    if not raw:
        return BytecodeProfile()

    instructions = disassemble(raw)
    counts = Counter(inst.name for inst in instructions)
    loops = count_backward_jumps(instructions)

    complexity = 1.0
    for name, weight in EXPENSIVE_OPCODE_WEIGHTS.items():
        if counts.get(name):
            complexity += weight
    complexity += loops * LOOP_WEIGHT

    return BytecodeProfile(
        code_size=len(raw),
        instruction_count=len(instructions),
        opcode_counts=dict(counts),
        loop_candidates=loops,
        selector_found=contains_selector(instructions, selector) if selector else False,
        complexity=min(complexity, MAX_COMPLEXITY),
    )


def estimate_from_complexity(complexity: float, arg_count: int) -> int:
    return BASE_TX_GAS + int(complexity * GAS_PER_COMPLEXITY) + arg_count * GAS_PER_ARGUMENT


def estimate_from_name(function_name: str) -> int:
    """Typical gas for a function name. Known-imprecise."""
    lower = function_name.lower()
    for pattern, gas in NAME_GAS_TABLE:
        if pattern in lower:
            return gas
    return DEFAULT_NAME_GAS

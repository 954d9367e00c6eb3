"""Tests for gasprofiler.simulator.heuristics."""

from __future__ import annotations

import pytest

from gasprofiler.simulator.heuristics import (
    BASE_TX_GAS,
    DEFAULT_NAME_GAS,
    MAX_COMPLEXITY,
    analyze_bytecode,
    disassemble,
    estimate_from_complexity,
    estimate_from_name,
    normalize_bytecode,
)
from gasprofiler.tests.fakes import make_bytecode


class TestDisassembly:
    def test_push_operands_are_skipped(self):
        instructions = disassemble(bytes.fromhex("6080604052"))
        assert [i.name for i in instructions] == ["PUSH1", "PUSH1", "OP_0x52"]
        assert instructions[0].operand == 0x80
        assert instructions[2].offset == 4

    def test_truncated_push_at_end(self):
        instructions = disassemble(bytes.fromhex("61ff"))
        assert len(instructions) == 1
        assert instructions[0].operand == 0xFF

    @pytest.mark.parametrize("raw", ["0x6080", "6080", "0X6080", b"\x60\x80"])
    def test_normalize_accepts_variants(self, raw):
        assert normalize_bytecode(raw) == b"\x60\x80"

    def test_normalize_invalid_hex(self):
        assert normalize_bytecode("0xnothex") == b""


class TestAnalyze:
    def test_expensive_opcodes_raise_complexity(self):
        profile = analyze_bytecode(make_bytecode("0x60fe47b1", opcodes=b"\x55\xf1"), "0x60fe47b1")
        assert profile.complexity == 6.0
        assert profile.selector_found is True
        assert profile.to_dict()["expensive_opcodes"] == {"SSTORE": 1, "CALL": 1}

    def test_selector_missing(self):
        profile = analyze_bytecode(make_bytecode("0x6d4ce63c"), "0x60fe47b1")
        assert profile.selector_found is False

    def test_backward_jump_counts_as_loop(self):
        # JUMPDEST; PUSH1 0x00; JUMP
        profile = analyze_bytecode("0x5b600056")
        assert profile.loop_candidates == 1
        assert profile.complexity == 1.5

    def test_forward_jump_is_not_a_loop(self):
        # PUSH1 0x04; JUMP; STOP; JUMPDEST
        profile = analyze_bytecode("0x600456005b")
        assert profile.loop_candidates == 0

    def test_complexity_is_capped(self):
        profile = analyze_bytecode(make_bytecode(opcodes=b"\x55\xf1\xf0\xf5\xf4"))
        assert profile.complexity == MAX_COMPLEXITY

    def test_empty_code(self):
        profile = analyze_bytecode("0x")
        assert profile.code_size == 0
        assert profile.instruction_count == 0


class TestEstimates:
    def test_from_complexity(self):
        assert estimate_from_complexity(1.0, 0) == BASE_TX_GAS + 5_000
        assert estimate_from_complexity(2.5, 3) == BASE_TX_GAS + 12_500 + 3_000

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("transfer", 65_000),
            ("transferFrom", 65_000),
            ("swapExactTokensForTokens", 180_000),
            ("setApprovalForAll", 50_000),
            ("getBalance", 25_000),
            ("addLiquidity", 70_000),
            ("frobnicate", DEFAULT_NAME_GAS),
        ],
    )
    def test_from_name(self, name, expected):
        assert estimate_from_name(name) == expected

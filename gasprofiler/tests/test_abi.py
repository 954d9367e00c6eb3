"""Tests for ABI loading and call encoding (gasprofiler/ingestion/abi.py)."""

from __future__ import annotations

import json

import pytest

from gasprofiler.core.errors import ABIError
from gasprofiler.core.types import StateMutability
from gasprofiler.ingestion.abi import (
    abi_functions,
    coerce_value,
    function_from_abi,
    load_abi,
    parse_args,
    resolve_functions,
    split_tuple_types,
)
from gasprofiler.tests.fakes import OWNER


class TestLoadAbi:
    def test_inline_json(self, sample_abi):
        assert load_abi(json.dumps(sample_abi)) == sample_abi

    def test_artifact_is_unwrapped(self, sample_abi):
        artifact = {"contractName": "Store", "abi": sample_abi, "bytecode": "0x"}
        assert load_abi(json.dumps(artifact)) == sample_abi

    def test_file_path(self, tmp_path, sample_abi):
        path = tmp_path / "Store.json"
        path.write_text(json.dumps(sample_abi), encoding="utf-8")
        assert load_abi(str(path)) == sample_abi

    def test_missing_file(self, tmp_path):
        with pytest.raises(ABIError, match="Failed to load ABI"):
            load_abi(str(tmp_path / "nope.json"))

    def test_invalid_json(self):
        with pytest.raises(ABIError):
            load_abi("[{not json")

    def test_object_without_abi_key(self):
        with pytest.raises(ABIError, match="must be an array"):
            load_abi('{"bytecode": "0x"}')


class TestFunctionSpec:
    def test_signature_and_selector(self, functions):
        transfer = functions["transfer"]
        assert transfer.signature == "transfer(address,uint256)"
        assert transfer.selector == "0xa9059cbb"
        assert transfer.param_count == 2
        assert transfer.input_names == ("to", "amount")

    def test_events_are_ignored(self, sample_abi):
        names = [f.name for f in abi_functions(sample_abi)]
        assert "ValueChanged" not in names
        assert len(names) == 5

    def test_tuple_types_are_canonical(self):
        spec = function_from_abi(
            {
                "type": "function",
                "name": "submit",
                "inputs": [
                    {
                        "name": "orders",
                        "type": "tuple[]",
                        "components": [
                            {"name": "maker", "type": "address"},
                            {"name": "legs", "type": "tuple", "components": [{"type": "uint256"}, {"type": "bool"}]},
                        ],
                    }
                ],
                "stateMutability": "nonpayable",
            }
        )
        assert spec.signature == "submit((address,(uint256,bool))[])"

    @pytest.mark.parametrize(
        "item,expected",
        [
            ({"stateMutability": "view"}, StateMutability.VIEW),
            ({"stateMutability": "payable"}, StateMutability.PAYABLE),
            ({"stateMutability": "weird"}, StateMutability.NONPAYABLE),
            ({"constant": True}, StateMutability.VIEW),
            ({"payable": True}, StateMutability.PAYABLE),
            ({}, StateMutability.NONPAYABLE),
        ],
    )
    def test_mutability(self, item, expected):
        spec = function_from_abi({"type": "function", "name": "f", "inputs": [], **item})
        assert spec.mutability == expected

    def test_encode_call(self, functions):
        assert functions["set"].encode_call([42]) == "0x60fe47b1" + "00" * 31 + "2a"

    def test_wrong_arg_count(self, functions):
        with pytest.raises(ABIError, match="expects 1 arguments, got 2"):
            functions["set"].encode_args([1, 2])

    def test_unencodable_value(self, functions):
        with pytest.raises(ABIError, match="Cannot encode"):
            functions["set"].encode_args([-1])

    @pytest.mark.parametrize(
        "name,args",
        [
            ("set", ["abc"]),
            ("set", [None]),
            ("batchSend", ["0x" + "11" * 20, "[not json", [1], "0x"]),
        ],
    )
    def test_uncoercible_value(self, functions, name, args):
        with pytest.raises(ABIError, match="Cannot encode"):
            functions[name].encode_args(args)

    def test_bad_address_keeps_its_message(self, functions):
        with pytest.raises(ABIError, match="Invalid address argument"):
            functions["transfer"].encode_args(["0x1234", 1])


class TestResolve:
    def test_by_name_and_signature(self, sample_abi):
        resolved = resolve_functions(sample_abi, ["get", "transfer(address, uint256)"])
        assert [f.signature for f in resolved] == ["get()", "transfer(address,uint256)"]

    def test_unknown_function(self, sample_abi):
        with pytest.raises(ABIError, match="not found"):
            resolve_functions(sample_abi, ["burn"])


class TestArguments:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, []),
            ("", []),
            ("[1, \"0xabc\"]", [1, "0xabc"]),
            ("5", [5]),
            ("hello", ["hello"]),
            ([1, 2], [1, 2]),
        ],
    )
    def test_parse_args(self, raw, expected):
        assert parse_args(raw) == expected

    def test_split_tuple_types(self):
        assert split_tuple_types("(address,(uint256,bool),bytes)") == ["address", "(uint256,bool)", "bytes"]

    @pytest.mark.parametrize(
        "abi_type,value,expected",
        [
            ("uint256", "0x10", 16),
            ("uint256", "42", 42),
            ("int8", -3, -3),
            ("bool", "true", True),
            ("bool", "no", False),
            ("bytes", "0x1234", b"\x12\x34"),
            ("bytes32", b"\x01" * 32, b"\x01" * 32),
            ("string", 7, "7"),
            ("uint256[]", "[1, 2]", [1, 2]),
            ("(uint256,bool)", [1, "1"], (1, True)),
        ],
    )
    def test_coerce_value(self, abi_type, value, expected):
        assert coerce_value(abi_type, value) == expected

    def test_address_is_checksummed(self):
        assert coerce_value("address", OWNER.lower()) == OWNER

    @pytest.mark.parametrize("value", ["0x1234", 12, "not-an-address"])
    def test_bad_address(self, value):
        with pytest.raises(ABIError, match="Invalid address"):
            coerce_value("address", value)

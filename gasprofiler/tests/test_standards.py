"""Tests for token-standard ABIs (gasprofiler/ingestion/standards.py)."""

from __future__ import annotations

import pytest

from gasprofiler.core.errors import ABIError
from gasprofiler.ingestion.abi import abi_functions
from gasprofiler.ingestion.advisor import detect_contract_type
from gasprofiler.ingestion.standards import STANDARD_ABIS, detect_standard, standard_abi, standard_name
from gasprofiler.tests.fakes import make_bytecode


def selectors_of(name: str) -> list[str]:
    return [spec.selector for spec in abi_functions(STANDARD_ABIS[name])]


class TestStandardAbi:
    @pytest.mark.parametrize("raw,expected", [("ERC20", "ERC20"), ("erc721", "ERC721"), (" erc-1155 ", "ERC1155")])
    def test_names_are_normalised(self, raw, expected):
        assert standard_name(raw) == expected

    def test_unknown_standard(self):
        with pytest.raises(ABIError, match="Unknown standard 'ERC777'"):
            standard_abi("ERC777")

    def test_returns_a_copy(self):
        abi = standard_abi("ERC20")
        abi[0]["name"] = "changed"
        assert STANDARD_ABIS["ERC20"][0]["name"] == "totalSupply"

    @pytest.mark.parametrize("name", sorted(STANDARD_ABIS))
    def test_contract_type_matches_standard(self, name):
        assert detect_contract_type(standard_abi(name)) == name

    def test_erc20_signatures(self):
        signatures = [spec.signature for spec in abi_functions(standard_abi("ERC20"))]
        assert "transferFrom(address,address,uint256)" in signatures
        assert "allowance(address,address)" in signatures
        assert len(signatures) == 6


class TestDetectStandard:
    @pytest.mark.parametrize("name", sorted(STANDARD_ABIS))
    def test_all_selectors_present(self, name):
        assert detect_standard(make_bytecode(*selectors_of(name))) == name

    def test_erc721_is_not_mistaken_for_erc20(self):
        # ERC721 shares balanceOf/approve/transferFrom selectors with ERC20
        assert detect_standard(make_bytecode(*selectors_of("ERC721"))) == "ERC721"

    def test_partial_interface(self):
        assert detect_standard(make_bytecode(*selectors_of("ERC20")[:3])) is None

    @pytest.mark.parametrize("code", ["0x", "", "0xzz"])
    def test_empty_or_invalid_code(self, code):
        assert detect_standard(code) is None

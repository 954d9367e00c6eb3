"""Interface ABIs for common token standards.

Used when a contract's own ABI is not at hand: the caller names a
standard, or the standard is recognised from the selectors embedded in
the deployed code.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from gasprofiler.core.errors import ABIError
from gasprofiler.ingestion.abi import abi_functions
from gasprofiler.simulator.heuristics import contains_selector, disassemble, normalize_bytecode

logger = logging.getLogger(__name__)


def _param(abi_type: str, name: str = "", indexed: bool | None = None) -> dict[str, Any]:
    param: dict[str, Any] = {"name": name, "type": abi_type}
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _function(
    name: str,
    inputs: list[dict[str, Any]],
    outputs: list[dict[str, Any]] | None = None,
    mutability: str = "nonpayable",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs or [],
        "stateMutability": mutability,
    }


def _event(name: str, inputs: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "event", "name": name, "inputs": inputs, "anonymous": False}


_ERC20 = [
    _function("totalSupply", [], [_param("uint256")], "view"),
    _function("balanceOf", [_param("address", "account")], [_param("uint256")], "view"),
    _function("transfer", [_param("address", "to"), _param("uint256", "amount")], [_param("bool")]),
    _function(
        "allowance",
        [_param("address", "owner"), _param("address", "spender")],
        [_param("uint256")],
        "view",
    ),
    _function("approve", [_param("address", "spender"), _param("uint256", "amount")], [_param("bool")]),
    _function(
        "transferFrom",
        [_param("address", "from"), _param("address", "to"), _param("uint256", "amount")],
        [_param("bool")],
    ),
    _event(
        "Transfer",
        [_param("address", "from", True), _param("address", "to", True), _param("uint256", "value", False)],
    ),
    _event(
        "Approval",
        [_param("address", "owner", True), _param("address", "spender", True), _param("uint256", "value", False)],
    ),
]

_ERC721 = [
    _function("balanceOf", [_param("address", "owner")], [_param("uint256")], "view"),
    _function("ownerOf", [_param("uint256", "tokenId")], [_param("address")], "view"),
    _function("approve", [_param("address", "to"), _param("uint256", "tokenId")]),
    _function("getApproved", [_param("uint256", "tokenId")], [_param("address")], "view"),
    _function("setApprovalForAll", [_param("address", "operator"), _param("bool", "approved")]),
    _function(
        "isApprovedForAll",
        [_param("address", "owner"), _param("address", "operator")],
        [_param("bool")],
        "view",
    ),
    _function("transferFrom", [_param("address", "from"), _param("address", "to"), _param("uint256", "tokenId")]),
    _function(
        "safeTransferFrom",
        [_param("address", "from"), _param("address", "to"), _param("uint256", "tokenId")],
    ),
    _event(
        "Transfer",
        [_param("address", "from", True), _param("address", "to", True), _param("uint256", "tokenId", True)],
    ),
    _event(
        "Approval",
        [_param("address", "owner", True), _param("address", "approved", True), _param("uint256", "tokenId", True)],
    ),
    _event(
        "ApprovalForAll",
        [_param("address", "owner", True), _param("address", "operator", True), _param("bool", "approved", False)],
    ),
]

_ERC1155 = [
    _function("balanceOf", [_param("address", "account"), _param("uint256", "id")], [_param("uint256")], "view"),
    _function(
        "balanceOfBatch",
        [_param("address[]", "accounts"), _param("uint256[]", "ids")],
        [_param("uint256[]")],
        "view",
    ),
    _function("setApprovalForAll", [_param("address", "operator"), _param("bool", "approved")]),
    _function(
        "isApprovedForAll",
        [_param("address", "account"), _param("address", "operator")],
        [_param("bool")],
        "view",
    ),
    _function(
        "safeTransferFrom",
        [
            _param("address", "from"),
            _param("address", "to"),
            _param("uint256", "id"),
            _param("uint256", "amount"),
            _param("bytes", "data"),
        ],
    ),
    _function(
        "safeBatchTransferFrom",
        [
            _param("address", "from"),
            _param("address", "to"),
            _param("uint256[]", "ids"),
            _param("uint256[]", "amounts"),
            _param("bytes", "data"),
        ],
    ),
    _function("uri", [_param("uint256", "id")], [_param("string")], "view"),
    _event(
        "TransferSingle",
        [
            _param("address", "operator", True),
            _param("address", "from", True),
            _param("address", "to", True),
            _param("uint256", "id", False),
            _param("uint256", "value", False),
        ],
    ),
    _event(
        "ApprovalForAll",
        [_param("address", "account", True), _param("address", "operator", True), _param("bool", "approved", False)],
    ),
]

# Checked in this order; the more specific interfaces come first
STANDARD_ABIS: dict[str, list[dict[str, Any]]] = {
    "ERC1155": _ERC1155,
    "ERC721": _ERC721,
    "ERC20": _ERC20,
}


def standard_name(name: str) -> str:
    """Canonical key for a standard name: ``erc-20`` and ``ERC20`` are the same."""
    key = name.strip().upper().replace("-", "")
    if key not in STANDARD_ABIS:
        raise ABIError(
            f"Unknown standard '{name}' (expected one of {', '.join(sorted(STANDARD_ABIS))})",
            standard=name,
        )
    return key


def standard_abi(name: str) -> list[dict[str, Any]]:
    """A fresh copy of the named standard's ABI."""
    return copy.deepcopy(STANDARD_ABIS[standard_name(name)])


def detect_standard(bytecode: str | bytes) -> str | None:
    """Name of the first standard whose every function selector is in ``bytecode``."""
    raw = normalize_bytecode(bytecode)
    if not raw:
        return None
    instructions = disassemble(raw)
    for name, abi in STANDARD_ABIS.items():
        if all(contains_selector(instructions, spec.selector) for spec in abi_functions(abi)):
            logger.info("Deployed code implements %s", name)
            return name
    return None

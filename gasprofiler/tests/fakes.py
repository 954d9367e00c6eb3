"""Fakes and sample data shared by the test suite."""

from __future__ import annotations

from collections import Counter
from typing import Any

from gasprofiler.core.errors import RPCError
from gasprofiler.ingestion.advisor import OWNER_SELECTOR
from gasprofiler.ingestion.rpc import ContractCall

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
OWNER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
NODE_SENDER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"


def make_bytecode(*selectors: str, opcodes: bytes = b"") -> str:
    """Tiny fake runtime code: a PUSH4 per selector followed by ``opcodes``."""
    body = b"\x60\x80\x60\x40\x52"
    for selector in selectors:
        body += b"\x63" + bytes.fromhex(selector.removeprefix("0x"))
    return "0x" + (body + opcodes + b"\x00").hex()


# ── Fake network ─────────────────────────────────────────────────────────────


class FakeNetwork:
    """In-memory network handle with per-method call counters.

    Each ``*_result`` attribute is either the value to return or an exception
    to raise. ``estimate_by_sender`` overrides ``estimate_result`` for
    specific (lower-cased) senders.
    """

    def __init__(self, gas: int = 2334, code: str | None = None) -> None:
        self.calls: Counter[str] = Counter()
        self.estimate_result: Any = gas
        self.estimate_by_sender: dict[str, Any] = {}
        self.call_result: Any = "0x" + "00" * 32
        self.owner_result: Any = RPCError("execution reverted", rpc_code=3)
        self.trace_result: Any = {"type": "CALL", "gasUsed": hex(gas), "calls": []}
        self.code = code if code is not None else make_bytecode("0x6d4ce63c", opcodes=b"\x55")
        self.price: Any = 10**9
        self.balance: Any = 5 * 10**18
        self.chain: Any = 50312
        self.receipt: dict[str, Any] = {"status": "0x1", "gasUsed": hex(gas), "blockNumber": "0x10"}
        self.sent: list[ContractCall] = []
        self.estimated: list[ContractCall] = []

    @staticmethod
    def _resolve(value: Any) -> Any:
        if isinstance(value, BaseException):
            raise value
        return value

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def estimate_gas(self, call: ContractCall) -> int:
        self.calls["estimate_gas"] += 1
        self.estimated.append(call)
        sender = (call.sender or "").lower()
        return self._resolve(self.estimate_by_sender.get(sender, self.estimate_result))

    async def call(self, call: ContractCall) -> str:
        self.calls["call"] += 1
        if call.data == OWNER_SELECTOR:
            return self._resolve(self.owner_result)
        return self._resolve(self.call_result)

    async def trace_call(self, call: ContractCall) -> dict[str, Any]:
        self.calls["trace_call"] += 1
        return self._resolve(self.trace_result)

    async def gas_price(self) -> int:
        self.calls["gas_price"] += 1
        return self._resolve(self.price)

    async def get_code(self, address: str) -> str:
        self.calls["get_code"] += 1
        return self._resolve(self.code)

    async def get_balance(self, address: str) -> int:
        self.calls["get_balance"] += 1
        return self._resolve(self.balance)

    async def chain_id(self) -> int:
        self.calls["chain_id"] += 1
        return self._resolve(self.chain)

    async def send_transaction(self, call: ContractCall) -> str:
        self.calls["send_transaction"] += 1
        self.sent.append(call)
        return "0x" + f"{len(self.sent):064x}"

    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None, poll_interval: float | None = None):
        self.calls["wait_for_receipt"] += 1
        return self._resolve(self.receipt)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Sample contract ──────────────────────────────────────────────────────────

SAMPLE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "get",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "set",
        "inputs": [{"name": "value", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "batchSend",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "recipients", "type": "address[]"},
            {"name": "amounts", "type": "uint256[]"},
            {"name": "memo", "type": "bytes"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "owner",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {
        "type": "event",
        "name": "ValueChanged",
        "inputs": [{"name": "value", "type": "uint256", "indexed": False}],
    },
]

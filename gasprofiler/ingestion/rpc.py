"""Network handle for EVM nodes, backed by web3.py."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from eth_utils import to_checksum_address, to_hex, to_int
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from gasprofiler.core.config import get_settings
from gasprofiler.core.errors import RPCError

logger = logging.getLogger(__name__)

# JSON-RPC "method not found"
METHOD_NOT_FOUND = -32601

_UNSUPPORTED_MARKERS = (
    "method not found",
    "does not exist",
    "not available",
    "not supported",
    "unsupported method",
    "unknown method",
)
_REVERT_MARKERS = ("revert", "execution reverted", "invalid opcode")


@dataclass(frozen=True)
class ContractCall:
    """A single message call against a contract."""

    to: str
    data: str
    sender: str | None = None
    value: int = 0
    gas: int | None = None

    def to_tx(self) -> dict[str, Any]:
        """Transaction dict in the form web3.py expects (checksummed, ints)."""
        tx: dict[str, Any] = {"to": to_checksum_address(self.to), "data": self.data}
        if self.sender:
            tx["from"] = to_checksum_address(self.sender)
        if self.value:
            tx["value"] = self.value
        if self.gas is not None:
            tx["gas"] = self.gas
        return tx

    def to_rpc(self) -> dict[str, str]:
        """Raw JSON-RPC form, hex quantities."""
        tx: dict[str, str] = {"to": self.to, "data": self.data}
        if self.sender:
            tx["from"] = self.sender
        if self.value:
            tx["value"] = hex(self.value)
        if self.gas is not None:
            tx["gas"] = hex(self.gas)
        return tx

    def with_sender(self, sender: str | None) -> ContractCall:
        return ContractCall(to=self.to, data=self.data, sender=sender, value=self.value, gas=self.gas)


class NetworkHandle(Protocol):
    """Capabilities the measurement strategies need from a network."""

    async def estimate_gas(self, call: ContractCall) -> int: ...

    async def call(self, call: ContractCall) -> str: ...

    async def trace_call(self, call: ContractCall) -> dict[str, Any]: ...

    async def gas_price(self) -> int: ...

    async def get_code(self, address: str) -> str: ...

    async def get_balance(self, address: str) -> int: ...


class TransactingNetwork(NetworkHandle, Protocol):
    """A network handle that can also identify itself and mine real transactions."""

    async def chain_id(self) -> int: ...

    async def send_transaction(self, call: ContractCall) -> str: ...

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> dict[str, Any]: ...


def is_unsupported_error(exc: BaseException) -> bool:
    """True when the node signalled it does not implement the method."""
    if isinstance(exc, RPCError) and exc.rpc_code == METHOD_NOT_FOUND:
        return True
    msg = str(exc).lower()
    return any(marker in msg for marker in _UNSUPPORTED_MARKERS)


def is_revert_error(exc: BaseException) -> bool:
    """True when the error text says the EVM reverted."""
    msg = str(exc).lower()
    return any(marker in msg for marker in _REVERT_MARKERS)


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return to_int(hexstr=value) if value.startswith(("0x", "0X")) else int(value)
    raise RPCError(f"Unexpected numeric value from node: {value!r}")


def _rpc_error(method: str, exc: Exception) -> RPCError:
    """Map a web3 error onto :class:`RPCError`, keeping the node's error object."""
    response = getattr(exc, "rpc_response", None)
    error = response.get("error") if isinstance(response, dict) else None
    if isinstance(error, dict):
        return RPCError(
            error.get("message", str(exc)),
            rpc_code=error.get("code"),
            data=error.get("data"),
            method=method,
        )
    return RPCError(str(exc), data=getattr(exc, "data", None), method=method)


@asynccontextmanager
async def _guard(method: str) -> AsyncIterator[None]:
    try:
        yield
    except RPCError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise RPCError(f"{method} transport error: {exc}", method=method) from exc
    except (Web3Exception, ValueError) as exc:
        raise _rpc_error(method, exc) from exc


class Web3Network:
    """web3.py-backed network handle implementing :class:`TransactingNetwork`.

    Usage::

        async with Web3Network("https://dream-rpc.somnia.network") as net:
            gas = await net.estimate_gas(call)

    ``debug_traceCall`` has no web3 binding and goes through the provider
    as a raw request.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        timeout: float | None = None,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        settings = get_settings()
        self.rpc_url = rpc_url or settings.rpc_url
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout or settings.rpc_timeout_seconds)},
            )
        )

    # ── Context manager ──────────────────────────────────────────────

    async def __aenter__(self) -> Web3Network:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the provider's HTTP sessions."""
        await self.w3.provider.disconnect()

    # ── Capabilities ─────────────────────────────────────────────────

    async def chain_id(self) -> int:
        async with _guard("eth_chainId"):
            return await self.w3.eth.chain_id

    async def estimate_gas(self, call: ContractCall) -> int:
        async with _guard("eth_estimateGas"):
            return await self.w3.eth.estimate_gas(call.to_tx())

    async def call(self, call: ContractCall) -> str:
        async with _guard("eth_call"):
            return to_hex(await self.w3.eth.call(call.to_tx(), "latest"))

    async def trace_call(self, call: ContractCall) -> dict[str, Any]:
        method = "debug_traceCall"
        async with _guard(method):
            response = await self.w3.provider.make_request(
                method,
                [call.to_rpc(), "latest", {"tracer": "callTracer"}],
            )
        error = response.get("error")
        if error:
            if isinstance(error, dict):
                raise RPCError(
                    error.get("message", "unknown error"),
                    rpc_code=error.get("code"),
                    data=error.get("data"),
                    method=method,
                )
            raise RPCError(str(error), method=method)
        result = response.get("result")
        if not isinstance(result, dict):
            raise RPCError("debug_traceCall returned no trace", method=method)
        return result

    async def gas_price(self) -> int:
        async with _guard("eth_gasPrice"):
            return await self.w3.eth.gas_price

    async def get_code(self, address: str) -> str:
        async with _guard("eth_getCode"):
            code = await self.w3.eth.get_code(to_checksum_address(address))
        return to_hex(code) if code else "0x"

    async def get_balance(self, address: str) -> int:
        async with _guard("eth_getBalance"):
            return await self.w3.eth.get_balance(to_checksum_address(address))

    async def send_transaction(self, call: ContractCall) -> str:
        """Submit a transaction from a node-managed (unlocked) account."""
        async with _guard("eth_sendTransaction"):
            return to_hex(await self.w3.eth.send_transaction(call.to_tx()))

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> dict[str, Any]:
        """Poll until the transaction is mined, or raise on timeout."""
        settings = get_settings()
        timeout = timeout if timeout is not None else settings.receipt_timeout_seconds
        poll_interval = poll_interval if poll_interval is not None else settings.receipt_poll_interval
        logger.debug("Waiting for receipt of %s", tx_hash)
        async with _guard("eth_getTransactionReceipt"):
            try:
                receipt = await self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=poll_interval
                )
            except TimeExhausted as exc:
                raise RPCError(
                    f"Transaction {tx_hash} not mined within {timeout:.0f}s",
                    method="eth_getTransactionReceipt",
                ) from exc
        return dict(receipt)


def receipt_gas_used(receipt: dict[str, Any]) -> int:
    return _to_int(receipt.get("gasUsed", 0))


def receipt_block_number(receipt: dict[str, Any]) -> int:
    return _to_int(receipt.get("blockNumber", 0))


def receipt_succeeded(receipt: dict[str, Any]) -> bool:
    status = receipt.get("status")
    return status is None or _to_int(status) == 1

"""Fee sponsor (ERC-4337 paymaster) validation and overhead accounting."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eth_utils import keccak

from gasprofiler.core.config import Settings, get_settings
from gasprofiler.ingestion.rpc import NetworkHandle
from gasprofiler.simulator.heuristics import contains_selector, disassemble, normalize_bytecode

logger = logging.getLogger(__name__)


def _selector(signature: str) -> str:
    return "0x" + keccak(text=signature)[:4].hex()


# EntryPoint v0.6 UserOperation / v0.7 PackedUserOperation
_USER_OP_V06 = "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
_USER_OP_V07 = "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"

VALIDATE_SELECTORS: dict[str, str] = {
    "entrypoint_v06": _selector(f"validatePaymasterUserOp({_USER_OP_V06},bytes32,uint256)"),
    "entrypoint_v07": _selector(f"validatePaymasterUserOp({_USER_OP_V07},bytes32,uint256)"),
}
POST_OP_SELECTORS: dict[str, str] = {
    "entrypoint_v06": _selector("postOp(uint8,bytes,uint256)"),
    "entrypoint_v07": _selector("postOp(uint8,bytes,uint256,uint256)"),
}


@dataclass(frozen=True)
class SponsorValidation:
    """Result of checking a sponsor contract's interface."""

    address: str
    valid: bool
    balance: int | None = None
    supported_features: tuple[str, ...] = ()
    code_size: int = 0
    errors: tuple[str, ...] = ()


class SponsorValidator:
    """Checks sponsor contracts and estimates the gas they add to a call."""

    def __init__(self, network: NetworkHandle, settings: Settings | None = None) -> None:
        self._network = network
        self._settings = settings or get_settings()
        self._validated: dict[str, SponsorValidation] = {}

    async def validate(self, address: str) -> SponsorValidation:
        """Validate the paymaster interface of ``address`` from its deployed code."""
        key = address.lower()
        if key in self._validated:
            return self._validated[key]

        code = normalize_bytecode(await self._network.get_code(address))
        if not code:
            validation = SponsorValidation(address=address, valid=False, errors=("no contract code at address",))
            self._validated[key] = validation
            return validation

        instructions = disassemble(code)
        features = tuple(
            version
            for version in VALIDATE_SELECTORS
            if contains_selector(instructions, VALIDATE_SELECTORS[version])
            and contains_selector(instructions, POST_OP_SELECTORS[version])
        )
        errors: list[str] = []
        if not any(contains_selector(instructions, s) for s in VALIDATE_SELECTORS.values()):
            errors.append("missing validatePaymasterUserOp")
        if not any(contains_selector(instructions, s) for s in POST_OP_SELECTORS.values()):
            errors.append("missing postOp")

        balance: int | None
        try:
            balance = await self._network.get_balance(address)
        except Exception as exc:
            logger.warning("Could not fetch sponsor balance for %s: %s", address, exc)
            balance = None

        validation = SponsorValidation(
            address=address,
            valid=bool(features),
            balance=balance,
            supported_features=features,
            code_size=len(code),
            errors=tuple(errors),
        )
        self._validated[key] = validation
        logger.info(
            "Sponsor %s: %s (%s)",
            address,
            "valid" if validation.valid else "invalid",
            ", ".join(features or validation.errors) or "no features",
        )
        return validation

    async def overhead(self, address: str) -> int:
        """Extra gas a sponsored call pays for validation, postOp and storage."""
        s = self._settings
        try:
            overhead = s.sponsor_validation_gas + s.sponsor_post_op_gas + s.sponsor_storage_gas
            validation = await self.validate(address)
            if validation.valid and validation.code_size > s.sponsor_complex_code_size:
                overhead += s.sponsor_complex_gas
            return overhead
        except Exception as exc:
            logger.warning("Sponsor overhead calculation failed for %s: %s", address, exc)
            return s.sponsor_default_overhead

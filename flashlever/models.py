"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

from .errors import UntrustedCallbackError

_AMOUNT_BYTES = 32


@dataclass(frozen=True)
class Position:
    """Live lending position, asset-denominated."""

    collateral_balance: int
    collateral_value: int
    debt: int

    @property
    def equity(self) -> int:
        return max(0, self.collateral_value - self.debt)


@dataclass(frozen=True)
class TargetPosition:
    collateral: int
    debt: int


@dataclass(frozen=True)
class LeverageParams:
    """Leverage configuration; all ratios are WAD-scaled."""

    target_leverage_ratio: int = 0
    leverage_buffer: int = 0
    max_leverage_ratio: int = 0

    @property
    def is_idle(self) -> bool:
        return self.target_leverage_ratio == 0

    @property
    def lower_bound(self) -> int:
        return max(0, self.target_leverage_ratio - self.leverage_buffer)

    @property
    def upper_bound(self) -> int:
        return self.target_leverage_ratio + self.leverage_buffer


@dataclass(frozen=True)
class RuntimeLimits:
    slippage_bps: int = 50
    deposit_limit: int = 0
    max_amount_to_swap: int | None = None
    min_amount_to_borrow: int = 0
    max_gas_price_to_tend: int = 0
    min_tend_interval: int = 0
    min_deploy_amount: int = 0
    allowed_depositors: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Roles:
    """Identities allowed to call privileged operations."""

    management: str = ""
    keepers: frozenset[str] = frozenset()
    emergency_admin: str = ""
    host: str = ""


class LeverageState(str, Enum):
    NO_POSITION = "no_position"
    UNDER_LEVERAGED = "under_leveraged"
    AT_TARGET = "at_target"
    OVER_LEVERAGED = "over_leveraged"
    ABOVE_MAX = "above_max"


class FlashOperation(IntEnum):
    LEVERAGE = 1
    DELEVERAGE = 2


@dataclass(frozen=True)
class FlashBorrowRequest:
    """Tagged payload carried through a flash borrow.

    Wire layout: one operation byte followed by a 32-byte big-endian amount.
    """

    operation: FlashOperation
    amount: int

    def encode(self) -> bytes:
        return bytes([int(self.operation)]) + self.amount.to_bytes(
            _AMOUNT_BYTES, "big"
        )

    @classmethod
    def decode(cls, data: bytes) -> FlashBorrowRequest:
        if len(data) != 1 + _AMOUNT_BYTES:
            raise UntrustedCallbackError(
                f"Malformed flash borrow payload ({len(data)} bytes)"
            )
        try:
            operation = FlashOperation(data[0])
        except ValueError as e:
            raise UntrustedCallbackError(
                f"Unknown flash operation tag {data[0]}"
            ) from e
        return cls(operation=operation, amount=int.from_bytes(data[1:], "big"))


@dataclass(frozen=True)
class PositionReport:
    """Point-in-time snapshot of the managed position."""

    collateral_balance: int
    collateral_value: int
    debt: int
    equity: int
    leverage_ratio: int
    ltv: int
    idle_assets: int
    liquidatable: bool
    state: LeverageState
    params: LeverageParams = field(default_factory=LeverageParams)

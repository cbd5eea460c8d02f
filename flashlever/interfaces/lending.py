"""Lending adapter — per-market supply/borrow/flash-borrow primitives."""
from typing import Protocol


class FlashBorrower(Protocol):
    """Receiver of a flash borrow; invoked while the funds are outstanding."""

    def on_flash_borrow(
        self,
        sender: object,
        token: str,
        amount: int,
        premium: int,
        data: bytes,
    ) -> None: ...


class LendingAdapter(Protocol):
    """Abstract interface for a lending market holding the position.

    Amounts are in token base units. ``oracle_price`` and
    ``liquidation_threshold`` are WAD-scaled; the price is asset per unit of
    collateral.
    """

    def supply_collateral(self, amount: int) -> None: ...

    def withdraw_collateral(self, amount: int) -> None: ...

    def borrow(self, amount: int) -> None: ...

    def repay(self, amount: int) -> None: ...

    def collateral_balance(self) -> int: ...

    def debt(self) -> int: ...

    def max_flash_borrow(self) -> int: ...

    def flash_borrow(
        self, receiver: FlashBorrower, token: str, amount: int, data: bytes
    ) -> None: ...

    def oracle_price(self) -> int: ...

    def is_supply_paused(self) -> bool: ...

    def is_borrow_paused(self) -> bool: ...

    def is_liquidatable(self) -> bool: ...

    def liquidation_threshold(self) -> int: ...

    def max_collateral_capacity(self) -> int: ...

    def max_borrow_capacity(self) -> int: ...

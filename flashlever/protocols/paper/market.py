"""Paper lending market — in-memory LendingAdapter with flash borrows."""
from __future__ import annotations

import logging
from typing import Any

from ...config import PaperMarketConfig
from ...constants import MAX_BPS, MAX_UINT256, WAD
from ...errors import InsufficientCapacityError
from ...interfaces.lending import FlashBorrower
from .account import PaperAccount

logger = logging.getLogger(__name__)


class PaperLendingMarket:
    """Single-position lending market backed by a :class:`PaperAccount`.

    Collateral is supplied from and withdrawn to the account; borrowed asset
    is credited to it. Borrows and withdrawals are refused once the position
    LTV would exceed ``max_ltv``.
    """

    def __init__(
        self,
        account: PaperAccount,
        config: PaperMarketConfig,
        asset: str,
        collateral: str,
    ) -> None:
        self._account = account
        self._asset = asset
        self._collateral_token = collateral
        self._liquidation_threshold = config.liquidation_threshold
        self._max_ltv = (
            config.max_ltv if config.max_ltv is not None else config.liquidation_threshold
        )
        self._flash_premium_bps = config.flash_premium_bps
        self._supply_cap = config.supply_cap
        self._borrow_cap = config.borrow_cap

        self._price = config.oracle_price
        self._flash_liquidity = config.flash_liquidity
        self._collateral = 0
        self._debt = 0
        self._supply_paused = False
        self._borrow_paused = False

    # ------------------------------------------------------------------
    # Paper controls
    # ------------------------------------------------------------------

    def set_oracle_price(self, price: int) -> None:
        logger.debug("Paper oracle price %d -> %d", self._price, price)
        self._price = price

    def set_flash_liquidity(self, amount: int) -> None:
        self._flash_liquidity = amount

    def set_paused(self, supply: bool | None = None, borrow: bool | None = None) -> None:
        if supply is not None:
            self._supply_paused = supply
        if borrow is not None:
            self._borrow_paused = borrow

    def accrue_interest(self, amount: int) -> None:
        self._debt += amount

    def snapshot(self) -> dict[str, Any]:
        return {
            "price": self._price,
            "flash_liquidity": self._flash_liquidity,
            "collateral": self._collateral,
            "debt": self._debt,
            "supply_paused": self._supply_paused,
            "borrow_paused": self._borrow_paused,
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self._price = snapshot["price"]
        self._flash_liquidity = snapshot["flash_liquidity"]
        self._collateral = snapshot["collateral"]
        self._debt = snapshot["debt"]
        self._supply_paused = snapshot["supply_paused"]
        self._borrow_paused = snapshot["borrow_paused"]

    # ------------------------------------------------------------------
    # LendingAdapter
    # ------------------------------------------------------------------

    def _value(self, collateral: int) -> int:
        return collateral * self._price // WAD

    def _check_ltv(self, collateral: int, debt: int) -> None:
        if debt and debt * WAD > self._value(collateral) * self._max_ltv:
            raise InsufficientCapacityError(
                f"Position would exceed max LTV: debt={debt} collateral={collateral}"
            )

    def supply_collateral(self, amount: int) -> None:
        if self._supply_paused:
            raise InsufficientCapacityError("Supply is paused")
        if amount > self.max_collateral_capacity():
            raise InsufficientCapacityError(f"Supply of {amount} exceeds supply cap")
        self._account.debit(self._collateral_token, amount)
        self._collateral += amount

    def withdraw_collateral(self, amount: int) -> None:
        if amount > self._collateral:
            raise InsufficientCapacityError(
                f"Withdraw of {amount} exceeds collateral {self._collateral}"
            )
        self._check_ltv(self._collateral - amount, self._debt)
        self._collateral -= amount
        self._account.credit(self._collateral_token, amount)

    def borrow(self, amount: int) -> None:
        if self._borrow_paused:
            raise InsufficientCapacityError("Borrowing is paused")
        if amount > self.max_borrow_capacity():
            raise InsufficientCapacityError(f"Borrow of {amount} exceeds borrow cap")
        self._check_ltv(self._collateral, self._debt + amount)
        self._debt += amount
        self._account.credit(self._asset, amount)

    def repay(self, amount: int) -> None:
        amount = min(amount, self._debt)
        self._account.debit(self._asset, amount)
        self._debt -= amount

    def collateral_balance(self) -> int:
        return self._collateral

    def debt(self) -> int:
        return self._debt

    def max_flash_borrow(self) -> int:
        return self._flash_liquidity

    def flash_borrow(
        self, receiver: FlashBorrower, token: str, amount: int, data: bytes
    ) -> None:
        if token != self._asset:
            raise InsufficientCapacityError(f"No flash liquidity for {token}")
        if amount > self._flash_liquidity:
            raise InsufficientCapacityError(
                f"Flash borrow of {amount} exceeds liquidity {self._flash_liquidity}"
            )
        premium = amount * self._flash_premium_bps // MAX_BPS
        self._account.credit(token, amount)
        receiver.on_flash_borrow(self, token, amount, premium, data)
        self._account.debit(token, amount + premium)

    def oracle_price(self) -> int:
        return self._price

    def is_supply_paused(self) -> bool:
        return self._supply_paused

    def is_borrow_paused(self) -> bool:
        return self._borrow_paused

    def is_liquidatable(self) -> bool:
        return self._debt * WAD > self._value(self._collateral) * self._liquidation_threshold

    def liquidation_threshold(self) -> int:
        return self._liquidation_threshold

    def max_collateral_capacity(self) -> int:
        if self._supply_cap is None:
            return MAX_UINT256
        return max(0, self._supply_cap - self._collateral)

    def max_borrow_capacity(self) -> int:
        if self._borrow_cap is None:
            return MAX_UINT256
        return max(0, self._borrow_cap - self._debt)

"""Deposit and withdraw limits derived from leverage, caps and flash liquidity."""
from __future__ import annotations

from ..constants import MAX_UINT256, WAD
from ..interfaces.lending import LendingAdapter
from .accounting import PositionAccounting, apply_slippage
from .params import ParameterStore


class CapacityCalculator:
    """Computes how much can safely enter or leave the position.

    Limits saturate to ``0`` rather than raising; only an in-flight flash
    operation aborts on missing capacity.
    """

    def __init__(
        self,
        lending: LendingAdapter,
        accounting: PositionAccounting,
        store: ParameterStore,
    ) -> None:
        self._lending = lending
        self._accounting = accounting
        self._store = store

    def deposit_capacity(self) -> int:
        """Deposit capacity ignoring the allow-list."""
        if self._lending.is_supply_paused() or self._lending.is_borrow_paused():
            return 0
        target = self._store.params.target_leverage_ratio
        if target <= WAD:
            return 0

        limits = self._store.limits
        remaining_cap = max(
            0, limits.deposit_limit - self._accounting.estimated_total_assets()
        )
        collateral_max = apply_slippage(
            self._accounting.collateral_to_asset(self._lending.max_collateral_capacity())
            * WAD
            // target,
            limits.slippage_bps,
        )
        borrow_max = self._lending.max_borrow_capacity() * WAD // (target - WAD)
        return min(remaining_cap, collateral_max, borrow_max)

    def available_deposit_limit(self, caller: str) -> int:
        if caller not in self._store.limits.allowed_depositors:
            return 0
        return self.deposit_capacity()

    def available_withdraw_limit(self, caller: str) -> int:
        """``MAX_UINT256`` whenever a full unwind fits in one flash borrow.

        Otherwise the debt that cannot be flash-repaid must stay backed at
        target leverage:

            target_debt'   = debt - flash_capacity
            target_equity' = target_debt' * WAD / (target - WAD)
            limit          = max(0, equity - target_equity')
        """
        position = self._accounting.position()
        flash_capacity = self._lending.max_flash_borrow()
        if flash_capacity >= position.debt:
            return MAX_UINT256

        target = self._store.params.target_leverage_ratio
        if target <= WAD:
            return 0
        target_debt = position.debt - flash_capacity
        target_equity = target_debt * WAD // (target - WAD)
        return max(0, position.equity - target_equity)

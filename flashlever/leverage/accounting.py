"""Position accounting — pure fixed-point math plus a live adapter projection."""
from __future__ import annotations

from ..constants import MAX_BPS, MAX_UINT256, WAD
from ..interfaces.account import TokenAccount
from ..interfaces.lending import LendingAdapter
from ..models import LeverageParams, LeverageState, Position, TargetPosition

# ---------------------------------------------------------------------------
# Pure functions (integer in, integer out)
# ---------------------------------------------------------------------------


def calc_leverage_ratio(collateral_value: int, debt: int) -> int:
    """Leverage as ``collateral / equity``, WAD-scaled.

    Returns 0 without collateral and saturates to ``MAX_UINT256`` once debt
    reaches the collateral value.
    """
    if collateral_value == 0:
        return 0
    if debt >= collateral_value:
        return MAX_UINT256
    return collateral_value * WAD // (collateral_value - debt)


def calc_ltv(collateral_value: int, debt: int) -> int:
    """Loan-to-value, WAD-scaled."""
    if collateral_value == 0:
        return 0
    return debt * WAD // collateral_value


def calc_target_position(equity: int, target_leverage_ratio: int) -> TargetPosition:
    """Map equity to the collateral and debt of a position at target leverage.

        target_collateral = equity * target / WAD
        target_debt       = max(0, target_collateral - equity)
    """
    collateral = equity * target_leverage_ratio // WAD
    return TargetPosition(collateral=collateral, debt=max(0, collateral - equity))


def implied_max_ltv(max_leverage_ratio: int) -> int:
    """LTV reached at ``max_leverage_ratio``: ``WAD - WAD**2 / max``."""
    if max_leverage_ratio == 0:
        return 0
    return WAD - WAD * WAD // max_leverage_ratio


def collateral_to_asset(amount: int, price: int) -> int:
    return amount * price // WAD


def asset_to_collateral(amount: int, price: int) -> int:
    if price == 0:
        return 0
    return amount * WAD // price


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output after ``slippage_bps`` of loss."""
    return amount * (MAX_BPS - slippage_bps) // MAX_BPS


def pad_for_slippage(amount: int, slippage_bps: int) -> int:
    """Inflate ``amount`` so that ``slippage_bps`` of loss still covers it."""
    return amount * (MAX_BPS + slippage_bps) // MAX_BPS


def classify(leverage: int, params: LeverageParams) -> LeverageState:
    if leverage == 0:
        return LeverageState.NO_POSITION
    if params.max_leverage_ratio and leverage > params.max_leverage_ratio:
        return LeverageState.ABOVE_MAX
    if leverage > params.upper_bound:
        return LeverageState.OVER_LEVERAGED
    if leverage < params.lower_bound:
        return LeverageState.UNDER_LEVERAGED
    return LeverageState.AT_TARGET


# ---------------------------------------------------------------------------
# Live projection
# ---------------------------------------------------------------------------


class PositionAccounting:
    """Reads balances and price from the collaborators on every call."""

    def __init__(
        self,
        lending: LendingAdapter,
        account: TokenAccount,
        asset: str,
        collateral: str,
    ) -> None:
        self._lending = lending
        self._account = account
        self.asset = asset
        self.collateral = collateral

    def position(self) -> Position:
        balance = self._lending.collateral_balance()
        return Position(
            collateral_balance=balance,
            collateral_value=collateral_to_asset(balance, self._lending.oracle_price()),
            debt=self._lending.debt(),
        )

    def current_leverage_ratio(self) -> int:
        pos = self.position()
        return calc_leverage_ratio(pos.collateral_value, pos.debt)

    def current_ltv(self) -> int:
        pos = self.position()
        return calc_ltv(pos.collateral_value, pos.debt)

    def collateral_to_asset(self, amount: int) -> int:
        return collateral_to_asset(amount, self._lending.oracle_price())

    def asset_to_collateral(self, amount: int) -> int:
        return asset_to_collateral(amount, self._lending.oracle_price())

    def idle_assets(self) -> int:
        return self._account.balance_of(self.asset)

    def loose_collateral(self) -> int:
        return self._account.balance_of(self.collateral)

    def estimated_total_assets(self) -> int:
        """Idle asset + unsupplied collateral (valued) + position equity."""
        pos = self.position()
        return (
            self.idle_assets()
            + self.collateral_to_asset(self.loose_collateral())
            + pos.equity
        )

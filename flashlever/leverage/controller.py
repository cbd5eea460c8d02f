"""Leverage controller — lever/delever/tend state transitions."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from ..errors import AuthorizationError
from ..interfaces.account import TokenAccount, Transactional
from ..interfaces.conversion import ConversionAdapter
from ..interfaces.lending import LendingAdapter
from ..models import (
    FlashOperation,
    LeverageParams,
    LeverageState,
    Position,
    PositionReport,
    Roles,
    RuntimeLimits,
    TargetPosition,
)
from .accounting import (
    PositionAccounting,
    calc_leverage_ratio,
    calc_ltv,
    calc_target_position,
    classify,
    pad_for_slippage,
)
from .capacity import CapacityCalculator
from .dispatcher import FlashBorrowDispatcher
from .params import ParameterStore, validate_limits

logger = logging.getLogger(__name__)


class LeverageController:
    """Keeps a collateral position at a target leverage using flash borrows.

    Nothing about the position is cached: every operation re-reads balances
    and the oracle price from the lending adapter. Each state-changing entry
    point runs in an atomic scope; if anything raises, every
    :class:`Transactional` collaborator is restored to its snapshot before the
    exception propagates.
    """

    def __init__(
        self,
        lending: LendingAdapter,
        conversion: ConversionAdapter,
        account: TokenAccount,
        *,
        asset: str,
        collateral: str,
        params: LeverageParams,
        limits: RuntimeLimits,
        roles: Roles,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lending = lending
        self._conversion = conversion
        self._account = account
        self._roles = roles
        self._clock = clock
        self.last_tend = 0.0

        validate_limits(limits)
        self.store = ParameterStore(LeverageParams(), limits)
        self.store.set_leverage_params(
            params.target_leverage_ratio,
            params.leverage_buffer,
            params.max_leverage_ratio,
            lending.liquidation_threshold(),
        )
        self.accounting = PositionAccounting(lending, account, asset, collateral)
        self.capacity = CapacityCalculator(lending, self.accounting, self.store)
        self.dispatcher = FlashBorrowDispatcher(
            lending, conversion, self.accounting, self.store
        )

    # ------------------------------------------------------------------
    # Authorization / atomicity
    # ------------------------------------------------------------------

    def _require(self, sender: str, *allowed: str) -> None:
        if not sender or sender not in allowed:
            raise AuthorizationError(f"{sender!r} is not authorized for this operation")

    def _require_management(self, sender: str) -> None:
        self._require(sender, self._roles.management)

    def _require_keeper(self, sender: str) -> None:
        self._require(sender, self._roles.management, *self._roles.keepers)

    def _require_emergency(self, sender: str) -> None:
        self._require(sender, self._roles.management, self._roles.emergency_admin)

    def _require_host(self, sender: str) -> None:
        self._require(sender, self._roles.host)

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        parties: list[Transactional] = []
        for collaborator in (self._lending, self._conversion, self._account):
            if isinstance(collaborator, Transactional) and all(
                collaborator is not p for p in parties
            ):
                parties.append(collaborator)
        snapshots: list[tuple[Transactional, Any]] = [
            (p, p.snapshot()) for p in parties
        ]
        try:
            yield
        except Exception:
            for party, snap in reversed(snapshots):
                party.restore(snap)
            logger.warning("Operation aborted, collaborator state rolled back")
            raise

    # ------------------------------------------------------------------
    # Position accounting
    # ------------------------------------------------------------------

    @property
    def params(self) -> LeverageParams:
        return self.store.params

    @property
    def limits(self) -> RuntimeLimits:
        return self.store.limits

    def position(self) -> Position:
        return self.accounting.position()

    def get_current_leverage_ratio(self) -> int:
        return self.accounting.current_leverage_ratio()

    def get_current_ltv(self) -> int:
        return self.accounting.current_ltv()

    def get_target_position(self, equity: int) -> TargetPosition:
        return calc_target_position(equity, self.params.target_leverage_ratio)

    def leverage_state(self) -> LeverageState:
        return classify(self.get_current_leverage_ratio(), self.params)

    def estimated_total_assets(self) -> int:
        return self.accounting.estimated_total_assets()

    def report(self) -> PositionReport:
        pos = self.position()
        leverage = calc_leverage_ratio(pos.collateral_value, pos.debt)
        return PositionReport(
            collateral_balance=pos.collateral_balance,
            collateral_value=pos.collateral_value,
            debt=pos.debt,
            equity=pos.equity,
            leverage_ratio=leverage,
            ltv=calc_ltv(pos.collateral_value, pos.debt),
            idle_assets=self.accounting.idle_assets(),
            liquidatable=self._lending.is_liquidatable(),
            state=classify(leverage, self.params),
            params=self.params,
        )

    # ------------------------------------------------------------------
    # Primitive moves
    # ------------------------------------------------------------------

    def _convert_and_supply(self, amount: int) -> None:
        collateral = self.dispatcher.convert_asset_to_collateral(amount)
        if collateral:
            self._lending.supply_collateral(collateral)

    def _withdraw_and_convert(self, collateral: int) -> None:
        if collateral:
            self._lending.withdraw_collateral(collateral)
            self.dispatcher.convert_collateral_to_asset(collateral)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def lever(self, amount: int) -> None:
        """Deploy ``amount`` of idle asset while moving toward target leverage.

        Trusted internal primitive with no role check. External callers reach
        it through :meth:`deploy_funds` (host) or :meth:`tend` (keeper).
        """
        with self._atomic():
            self._lever(amount)

    def delever(self, amount_needed: int) -> None:
        """Make ``amount_needed`` of asset freely withdrawable.

        Trusted internal primitive with no role check. The host reaches it
        through :meth:`free_funds`.
        """
        with self._atomic():
            self._delever(amount_needed)

    def _lever(self, amount: int) -> None:
        params = self.params
        limits = self.limits
        pos = self.position()
        target_debt = self.get_target_position(pos.equity + amount).debt

        if target_debt > pos.debt:
            flash = min(target_debt - pos.debt, self._lending.max_flash_borrow())
            ceiling = limits.max_amount_to_swap
            if ceiling is not None and amount + flash > ceiling:
                if amount > ceiling:
                    logger.info("Amount %d exceeds swap ceiling, supplying %d", amount, ceiling)
                    self._convert_and_supply(ceiling)
                    return
                flash = ceiling - amount

            if flash <= limits.min_amount_to_borrow:
                repay = min(amount, pos.debt)
                logger.info("Flash amount %d below minimum, repaying %d", flash, repay)
                if repay:
                    self._lending.repay(repay)
                return

            self.dispatcher.issue(FlashOperation.LEVERAGE, flash, amount)

        elif pos.debt > target_debt:
            debt_to_repay = pos.debt - target_debt
            if amount >= debt_to_repay:
                self._lending.repay(debt_to_repay)
                if params.is_idle:
                    self._withdraw_and_convert(self._lending.collateral_balance())
                else:
                    self._convert_and_supply(amount - debt_to_repay)
                return

            if amount:
                self._lending.repay(amount)
            shortfall = min(debt_to_repay - amount, self._lending.max_flash_borrow())
            if shortfall == 0:
                logger.warning("No flash liquidity available to delever")
                return

            # Only a flash covering the whole remaining debt may free everything
            if params.is_idle and shortfall == debt_to_repay - amount:
                collateral_to_free = self._lending.collateral_balance()
            else:
                collateral_to_free = pad_for_slippage(
                    self.accounting.asset_to_collateral(shortfall), limits.slippage_bps
                )
            self.dispatcher.issue(FlashOperation.DELEVERAGE, shortfall, collateral_to_free)

        elif params.is_idle:
            # Idle mode keeps assets uncommitted
            self._withdraw_and_convert(pos.collateral_balance)

        else:
            self._convert_and_supply(amount)

    def _delever(self, amount_needed: int) -> None:
        pos = self.position()
        if pos.debt == 0:
            self._withdraw_and_convert(
                min(self.accounting.asset_to_collateral(amount_needed), pos.collateral_balance)
            )
            return

        target_equity = max(0, pos.equity - amount_needed)
        target_debt = self.get_target_position(target_equity).debt
        debt_to_repay = min(
            pad_for_slippage(max(0, pos.debt - target_debt), self.limits.slippage_bps),
            self._lending.max_flash_borrow(),
        )

        if debt_to_repay == 0:
            self._withdraw_and_convert(
                min(self.accounting.asset_to_collateral(amount_needed), pos.collateral_balance)
            )
            return

        self.dispatcher.issue(
            FlashOperation.DELEVERAGE,
            debt_to_repay,
            self.accounting.asset_to_collateral(debt_to_repay + amount_needed),
        )

    # ------------------------------------------------------------------
    # Keeper
    # ------------------------------------------------------------------

    def tend(self, *, sender: str) -> None:
        """Deploy idle assets and rebalance toward target leverage."""
        self._require_keeper(sender)
        idle = self.accounting.idle_assets()
        with self._atomic():
            self._lever(idle)
        self.last_tend = self._clock()
        logger.info(
            "Tended: idle=%d leverage=%d", idle, self.get_current_leverage_ratio()
        )

    def tend_trigger(self, total_assets: int, base_fee: int) -> bool:
        """Whether a keeper should call :meth:`tend` now."""
        if self._lending.is_liquidatable():
            return True
        if total_assets == 0:
            return False
        if self._lending.is_supply_paused() or self._lending.is_borrow_paused():
            return False

        params = self.params
        limits = self.limits
        leverage = self.get_current_leverage_ratio()
        if leverage > params.max_leverage_ratio:
            return True
        if self._clock() - self.last_tend < limits.min_tend_interval:
            return False
        if params.is_idle:
            return leverage != 0

        gas_ok = base_fee <= limits.max_gas_price_to_tend
        if not gas_ok:
            return False
        idle = self.accounting.idle_assets()
        if leverage > params.upper_bound and (
            idle > 0 or self._lending.max_flash_borrow() > 0
        ):
            return True
        if leverage < params.lower_bound and self.capacity.deposit_capacity() > 0:
            return True
        if idle > limits.min_deploy_amount and self.capacity.deposit_capacity() > 0:
            return True
        return False

    # ------------------------------------------------------------------
    # Host entry points
    # ------------------------------------------------------------------

    def deploy_funds(self, amount: int, *, sender: str) -> None:
        self._require_host(sender)
        self.lever(amount)

    def free_funds(self, amount: int, *, sender: str) -> None:
        self._require_host(sender)
        self.delever(amount)

    def harvest_and_report(self, *, sender: str) -> int:
        self._require_host(sender)
        total = self.estimated_total_assets()
        logger.info("Reported total assets: %d", total)
        return total

    def available_deposit_limit(self, caller: str) -> int:
        return self.capacity.available_deposit_limit(caller)

    def available_withdraw_limit(self, caller: str) -> int:
        return self.capacity.available_withdraw_limit(caller)

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def set_leverage_params(
        self, target: int, buffer: int, max_ratio: int, *, sender: str
    ) -> LeverageParams:
        self._require_management(sender)
        return self.store.set_leverage_params(
            target, buffer, max_ratio, self._lending.liquidation_threshold()
        )

    def update_limits(self, *, sender: str, **changes: Any) -> RuntimeLimits:
        self._require_management(sender)
        return self.store.update_limits(**changes)

    def set_depositor(self, depositor: str, allowed: bool, *, sender: str) -> RuntimeLimits:
        self._require_management(sender)
        depositors = set(self.limits.allowed_depositors)
        if allowed:
            depositors.add(depositor)
        else:
            depositors.discard(depositor)
        return self.store.update_limits(allowed_depositors=depositors)

    # ------------------------------------------------------------------
    # Emergency
    # ------------------------------------------------------------------

    def unwind(self, *, sender: str) -> None:
        """Repay as much debt as flash liquidity allows and release collateral.

        With enough flash liquidity the position ends fully closed; otherwise
        collateral is released pro rata to the debt repaid.
        """
        self._require_emergency(sender)
        with self._atomic():
            pos = self.position()
            if pos.debt == 0:
                self._withdraw_and_convert(pos.collateral_balance)
                return
            flash = min(pos.debt, self._lending.max_flash_borrow())
            if flash == 0:
                logger.warning("Unwind skipped: no flash liquidity")
                return
            collateral_to_free = pos.collateral_balance * flash // pos.debt
            self.dispatcher.issue(FlashOperation.DELEVERAGE, flash, collateral_to_free)
        logger.info("Unwound position: %s", self.position())

    def manual_supply_collateral(self, amount: int, *, sender: str) -> None:
        self._require_emergency(sender)
        with self._atomic():
            self._lending.supply_collateral(amount)

    def manual_withdraw_collateral(self, amount: int, *, sender: str) -> None:
        self._require_emergency(sender)
        with self._atomic():
            self._lending.withdraw_collateral(amount)

    def manual_borrow(self, amount: int, *, sender: str) -> None:
        self._require_emergency(sender)
        with self._atomic():
            self._lending.borrow(amount)

    def manual_repay(self, amount: int, *, sender: str) -> None:
        self._require_emergency(sender)
        with self._atomic():
            self._lending.repay(amount)

    def manual_convert_asset_to_collateral(self, amount: int, *, sender: str) -> int:
        self._require_emergency(sender)
        with self._atomic():
            return self.dispatcher.convert_asset_to_collateral(amount)

    def manual_convert_collateral_to_asset(self, amount: int, *, sender: str) -> int:
        self._require_emergency(sender)
        with self._atomic():
            return self.dispatcher.convert_collateral_to_asset(amount)

"""Flash-borrow callback dispatcher — the continuation run inside a flash borrow."""
from __future__ import annotations

import logging

from ..errors import LeverageBoundsError, SlippageViolation, UntrustedCallbackError
from ..interfaces.conversion import ConversionAdapter
from ..interfaces.lending import LendingAdapter
from ..models import FlashBorrowRequest, FlashOperation
from .accounting import PositionAccounting, apply_slippage
from .params import ParameterStore

logger = logging.getLogger(__name__)


class FlashBorrowDispatcher:
    """Issues flash borrows and executes their callbacks.

    The lending adapter calls :meth:`on_flash_borrow` synchronously while the
    borrowed funds are outstanding. The callback is accepted only while this
    dispatcher has a flash borrow in flight and only from the trusted adapter.
    """

    def __init__(
        self,
        lending: LendingAdapter,
        conversion: ConversionAdapter,
        accounting: PositionAccounting,
        store: ParameterStore,
    ) -> None:
        self._lending = lending
        self._conversion = conversion
        self._accounting = accounting
        self._store = store
        self._in_flight = False
        self._leverage_before = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ------------------------------------------------------------------
    # Slippage-bounded conversions
    # ------------------------------------------------------------------

    def convert_asset_to_collateral(self, amount: int) -> int:
        if amount == 0:
            return 0
        min_out = apply_slippage(
            self._accounting.asset_to_collateral(amount),
            self._store.limits.slippage_bps,
        )
        out = self._conversion.convert_asset_to_collateral(amount, min_out)
        if out < min_out:
            raise SlippageViolation(
                f"Asset->collateral returned {out}, minimum {min_out}"
            )
        return out

    def convert_collateral_to_asset(self, amount: int) -> int:
        if amount == 0:
            return 0
        min_out = apply_slippage(
            self._accounting.collateral_to_asset(amount),
            self._store.limits.slippage_bps,
        )
        out = self._conversion.convert_collateral_to_asset(amount, min_out)
        if out < min_out:
            raise SlippageViolation(
                f"Collateral->asset returned {out}, minimum {min_out}"
            )
        return out

    # ------------------------------------------------------------------
    # Issue / callback
    # ------------------------------------------------------------------

    def issue(self, operation: FlashOperation, amount: int, payload: int) -> None:
        """Flash-borrow ``amount`` of asset and run ``operation`` inside it.

        Internal to the controller: it has no role check and no rollback of
        its own, so callers must hold ``LeverageController._atomic()``.
        """
        if self._in_flight:
            raise UntrustedCallbackError("A flash borrow is already in flight")

        request = FlashBorrowRequest(operation=operation, amount=payload)
        logger.info(
            "Flash borrow %s: amount=%d payload=%d", operation.name, amount, payload
        )
        self._leverage_before = self._accounting.current_leverage_ratio()
        self._in_flight = True
        try:
            self._lending.flash_borrow(
                self, self._accounting.asset, amount, request.encode()
            )
        finally:
            self._in_flight = False

    def on_flash_borrow(
        self,
        sender: object,
        token: str,
        amount: int,
        premium: int,
        data: bytes,
    ) -> None:
        if not self._in_flight:
            raise UntrustedCallbackError("No flash borrow in flight")
        if sender is not self._lending:
            raise UntrustedCallbackError("Callback sender is not the lending adapter")
        if token != self._accounting.asset:
            raise UntrustedCallbackError(f"Unexpected flash borrow token {token!r}")

        request = FlashBorrowRequest.decode(data)
        if request.operation is FlashOperation.LEVERAGE:
            self._leverage(request.amount, amount, premium)
        else:
            self._deleverage(request.amount, amount)

    def _leverage(self, deposit: int, borrowed: int, premium: int) -> None:
        collateral = self.convert_asset_to_collateral(deposit + borrowed)
        self._lending.supply_collateral(collateral)
        self._lending.borrow(borrowed + premium)

        leverage = self._accounting.current_leverage_ratio()
        max_ratio = self._store.params.max_leverage_ratio
        if leverage >= max_ratio:
            raise LeverageBoundsError(
                f"Leverage {leverage} would reach max leverage ratio {max_ratio}"
            )
        logger.debug("Leveraged: supplied=%d borrowed=%d", collateral, borrowed + premium)

    def _deleverage(self, collateral_to_free: int, borrowed: int) -> None:
        repay = min(borrowed, self._lending.debt())
        if repay:
            self._lending.repay(repay)

        withdraw = min(collateral_to_free, self._lending.collateral_balance())
        if withdraw:
            self._lending.withdraw_collateral(withdraw)
            self.convert_collateral_to_asset(withdraw)

        # A partial delever that still sits above max is accepted only if it
        # moved leverage down.
        leverage = self._accounting.current_leverage_ratio()
        max_ratio = self._store.params.max_leverage_ratio
        if leverage >= max_ratio and leverage >= self._leverage_before:
            raise LeverageBoundsError(
                f"Leverage {leverage} still at or above max leverage ratio {max_ratio}"
            )
        logger.debug("Deleveraged: repaid=%d withdrew=%d", repay, withdraw)

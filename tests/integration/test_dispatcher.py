"""Integration tests for the flash-borrow callback dispatcher."""
from __future__ import annotations

import pytest

from flashlever.constants import WAD
from flashlever.errors import LeverageBoundsError, UntrustedCallbackError
from flashlever.models import FlashBorrowRequest, FlashOperation

PAYLOAD = FlashBorrowRequest(FlashOperation.LEVERAGE, 1_000 * WAD).encode()


class TestCallbackGuards:
    def test_rejects_call_outside_flash_borrow(self, strategy) -> None:
        dispatcher = strategy.controller.dispatcher
        with pytest.raises(UntrustedCallbackError, match="No flash borrow in flight"):
            dispatcher.on_flash_borrow(strategy.market, "USDC", WAD, 0, PAYLOAD)
        assert strategy.market.collateral_balance() == 0

    def test_rejects_untrusted_sender(self, strategy) -> None:
        dispatcher = strategy.controller.dispatcher
        intruder = object()

        class ForgingMarket:
            """Routes the flash borrow callback through a different sender."""

            def flash_borrow(self, receiver, token, amount, data) -> None:
                receiver.on_flash_borrow(intruder, token, amount, 0, data)

        dispatcher._lending = ForgingMarket()
        with pytest.raises(UntrustedCallbackError, match="not the lending adapter"):
            dispatcher.issue(FlashOperation.LEVERAGE, WAD, 0)
        assert not dispatcher.in_flight

    def test_rejects_unexpected_token(self, strategy) -> None:
        dispatcher = strategy.controller.dispatcher

        class WrongToken:
            def flash_borrow(self, receiver, token, amount, data) -> None:
                receiver.on_flash_borrow(self, "DAI", amount, 0, data)

        forged = WrongToken()
        dispatcher._lending = forged
        with pytest.raises(UntrustedCallbackError, match="token"):
            dispatcher.issue(FlashOperation.LEVERAGE, WAD, 0)

    def test_rejects_reentrant_issue(self, strategy) -> None:
        dispatcher = strategy.controller.dispatcher

        class Reentrant:
            def flash_borrow(self, receiver, token, amount, data) -> None:
                dispatcher.issue(FlashOperation.LEVERAGE, amount, 0)

        dispatcher._lending = Reentrant()
        with pytest.raises(UntrustedCallbackError, match="already in flight"):
            dispatcher.issue(FlashOperation.LEVERAGE, WAD, 0)
        assert not dispatcher.in_flight


class TestBoundsCheck:
    def test_leverage_beyond_max_aborts_and_rolls_back(self, strategy) -> None:
        controller = strategy.controller
        # 30,000 flash on 10,000 equity lands at exactly 4x
        with pytest.raises(LeverageBoundsError):
            with controller._atomic():
                controller.dispatcher.issue(
                    FlashOperation.LEVERAGE, 30_000 * WAD, 10_000 * WAD
                )

        assert strategy.market.collateral_balance() == 0
        assert strategy.market.debt() == 0
        assert strategy.account.balance_of("USDC") == 10_000 * WAD
        assert not controller.dispatcher.in_flight

    def test_partial_delever_that_lowers_leverage_passes(self, levered) -> None:
        controller = levered.controller
        levered.market.set_oracle_price(85 * WAD // 100)
        before = controller.get_current_leverage_ratio()
        assert before > 4 * WAD

        with controller._atomic():
            controller.dispatcher.issue(
                FlashOperation.DELEVERAGE, 1_000 * WAD, 1_200 * WAD
            )
        assert controller.get_current_leverage_ratio() < before
        assert levered.market.debt() == 19_000 * WAD

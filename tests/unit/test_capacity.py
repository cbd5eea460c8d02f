"""Unit tests for deposit/withdraw limits."""
from __future__ import annotations

from dataclasses import replace

from flashlever.constants import MAX_UINT256, WAD


class TestAvailableWithdrawLimit:
    def test_sentinel_when_flash_covers_debt(self, levered) -> None:
        levered.market.set_flash_liquidity(20_000 * WAD)
        assert levered.controller.available_withdraw_limit("vault") == MAX_UINT256

    def test_sentinel_without_debt(self, strategy) -> None:
        strategy.market.set_flash_liquidity(0)
        assert strategy.controller.available_withdraw_limit("vault") == MAX_UINT256

    def test_formula_when_flash_short(self, levered) -> None:
        levered.market.set_flash_liquidity(5_000 * WAD)
        # debt' = 15,000 -> equity' = 15,000 / (3 - 1) = 7,500
        assert levered.controller.available_withdraw_limit("vault") == 2_500 * WAD

    def test_formula_is_exact(self, levered) -> None:
        flash = 12_345_678_901_234_567_890_123
        levered.market.set_flash_liquidity(flash)
        pos = levered.controller.position()
        target_equity = (pos.debt - flash) * WAD // (2 * WAD)
        assert levered.controller.available_withdraw_limit("vault") == (
            pos.equity - target_equity
        )

    def test_floors_at_zero(self, levered) -> None:
        levered.market.set_flash_liquidity(0)
        assert levered.controller.available_withdraw_limit("vault") == 0


class TestAvailableDepositLimit:
    def test_not_allowed_depositor(self, strategy) -> None:
        assert strategy.controller.available_deposit_limit("stranger") == 0

    def test_remaining_deposit_cap(self, strategy) -> None:
        # Idle balance already counts toward the deposit limit
        assert strategy.controller.available_deposit_limit("vault") == (
            1_000_000 * WAD - 10_000 * WAD
        )

    def test_paused_market(self, strategy) -> None:
        strategy.market.set_paused(borrow=True)
        assert strategy.controller.available_deposit_limit("vault") == 0

    def test_borrow_cap_binds(self, make_strategy, sample_paper_config) -> None:
        s = make_strategy(paper=replace(sample_paper_config, borrow_cap=4_000 * WAD))
        # Each unit deposited at 3x needs two units of borrow
        assert s.controller.available_deposit_limit("vault") == 2_000 * WAD

    def test_supply_cap_binds(self, make_strategy, sample_paper_config) -> None:
        s = make_strategy(paper=replace(sample_paper_config, supply_cap=9_000 * WAD))
        assert s.controller.available_deposit_limit("vault") == 3_000 * WAD

    def test_set_depositor(self, strategy) -> None:
        strategy.controller.set_depositor("fund", True, sender="mgmt")
        assert strategy.controller.available_deposit_limit("fund") > 0
        strategy.controller.set_depositor("fund", False, sender="mgmt")
        assert strategy.controller.available_deposit_limit("fund") == 0

"""Paper swapper — converts at the market oracle price minus a flat fee."""
from __future__ import annotations

from ...constants import MAX_BPS, WAD
from ...errors import SlippageViolation
from .account import PaperAccount
from .market import PaperLendingMarket


class PaperSwapper:
    """ConversionAdapter quoting from the paper market's oracle."""

    def __init__(
        self,
        account: PaperAccount,
        market: PaperLendingMarket,
        asset: str,
        collateral: str,
        fee_bps: int = 0,
    ) -> None:
        self._account = account
        self._market = market
        self._asset = asset
        self._collateral = collateral
        self.fee_bps = fee_bps

    def _after_fee(self, amount: int) -> int:
        return amount * (MAX_BPS - self.fee_bps) // MAX_BPS

    def convert_asset_to_collateral(self, amount: int, min_out: int) -> int:
        price = self._market.oracle_price()
        out = self._after_fee(amount * WAD // price) if price else 0
        if out < min_out:
            raise SlippageViolation(f"Swap output {out} below minimum {min_out}")
        self._account.debit(self._asset, amount)
        self._account.credit(self._collateral, out)
        return out

    def convert_collateral_to_asset(self, amount: int, min_out: int) -> int:
        out = self._after_fee(amount * self._market.oracle_price() // WAD)
        if out < min_out:
            raise SlippageViolation(f"Swap output {out} below minimum {min_out}")
        self._account.debit(self._collateral, amount)
        self._account.credit(self._asset, out)
        return out

"""Keeper service — evaluates tend_trigger on a schedule and tends."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ..chains.evm import EvmClient
from ..config import AppConfig
from ..constants import MAX_UINT256, WAD
from ..errors import LeverageError
from ..interfaces.chain import GasOracle
from ..interfaces.notifier import Notifier
from ..leverage import LeverageController
from ..models import LeverageState, PositionReport
from ..notifications import TelegramNotifier
from ..oracles import PythOracle
from ..protocols.paper import PaperAccount, PaperLendingMarket, PaperSwapper

logger = logging.getLogger(__name__)


def _build_paper_market(config: AppConfig) -> tuple[Any, Any, Any]:
    strategy = config.strategy
    paper = config.market.paper
    account = PaperAccount(paper.initial_balances)
    market = PaperLendingMarket(account, paper, strategy.asset, strategy.collateral)
    swapper = PaperSwapper(
        account, market, strategy.asset, strategy.collateral, paper.swap_fee_bps
    )
    return market, swapper, account


# Registry of market factories keyed by ``market.kind``. Each returns
# (lending adapter, conversion adapter, token account).
_MARKET_FACTORIES: dict[str, Any] = {
    "paper": _build_paper_market,
}


def format_ratio(value: int) -> str:
    """Render a WAD ratio as a multiple, e.g. ``3.0000x``."""
    if value >= MAX_UINT256:
        return "∞"
    return f"{value / WAD:.4f}x"


class Keeper:
    """Runs keeper cycles for one controller and reports through notifiers."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._sender = config.keeper.sender or config.strategy.roles.management

        factory = _MARKET_FACTORIES.get(config.market.kind)
        if factory is None:
            raise LeverageError(f"No market factory for kind '{config.market.kind}'")
        self._lending, conversion, account = factory(config)

        strategy = config.strategy
        self.controller = LeverageController(
            self._lending,
            conversion,
            account,
            asset=strategy.asset,
            collateral=strategy.collateral,
            params=strategy.leverage,
            limits=strategy.limits,
            roles=strategy.roles,
        )

        self._gas_oracle: GasOracle | None = None
        if config.chain.rpc_endpoints:
            self._gas_oracle = EvmClient(config.chain)

        self._oracle: PythOracle | None = None
        feeds = config.price_oracle.pyth.feeds
        if strategy.asset in feeds and strategy.collateral in feeds:
            self._oracle = PythOracle(config.price_oracle.pyth)

        self._notifiers: list[Notifier] = []
        if config.notifications.telegram.enabled:
            self._notifiers.append(TelegramNotifier(config.notifications.telegram))

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def format_report(self, report: PositionReport) -> str:
        strategy = self._config.strategy
        params = report.params
        return (
            f"📊 {strategy.collateral}/{strategy.asset} · {report.state.value}\n"
            f"\n"
            f"Collateral: {report.collateral_balance} {strategy.collateral}"
            f" ({report.collateral_value} {strategy.asset})\n"
            f"Debt: {report.debt} {strategy.asset}\n"
            f"Equity: {report.equity} · Idle: {report.idle_assets}\n"
            f"Leverage: {format_ratio(report.leverage_ratio)}"
            f" (target {format_ratio(params.target_leverage_ratio)},"
            f" max {format_ratio(params.max_leverage_ratio)})\n"
            f"LTV: {report.ltv / WAD:.2%}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def refresh_price(self) -> None:
        """Push the latest oracle ratio into a market that accepts one."""
        if self._oracle is None or not hasattr(self._lending, "set_oracle_price"):
            return
        strategy = self._config.strategy
        ratio = await self._oracle.fetch_ratio(strategy.collateral, strategy.asset)
        if ratio:
            self._lending.set_oracle_price(ratio)

    async def gas_price(self) -> int:
        if self._gas_oracle is None:
            return 0
        return await self._gas_oracle.get_gas_price()

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def check_and_tend(self) -> bool:
        """Run one keeper cycle; returns whether a tend was executed."""
        await self.refresh_price()
        try:
            base_fee = await self.gas_price()
        except Exception as e:
            logger.error("Gas price unavailable, skipping cycle: %s", e)
            return False

        controller = self.controller
        total_assets = controller.estimated_total_assets()
        tended = False
        if controller.tend_trigger(total_assets, base_fee):
            try:
                controller.tend(sender=self._sender)
                tended = True
            except LeverageError as e:
                logger.error("Tend failed: %s", e)
                await self._send_alert(
                    f"Tend failed: {e}\n\n{self._now_str()} UTC",
                    subject="🚨 Tend failed",
                )
        else:
            logger.info("Tend not triggered (base fee %d)", base_fee)

        report = controller.report()
        logger.info(
            "Position: leverage=%s ltv=%.2f%% debt=%d state=%s",
            format_ratio(report.leverage_ratio),
            report.ltv * 100 / WAD,
            report.debt,
            report.state.value,
        )
        if tended:
            await self._send_log(self.format_report(report), silent=True)

        if report.liquidatable:
            await self._send_alert(
                self.format_report(report), subject="🚨 CRITICAL: Position liquidatable"
            )
        elif report.state is LeverageState.ABOVE_MAX:
            await self._send_alert(
                self.format_report(report), subject="⚠️ WARNING: Leverage above max"
            )
        return tended

    async def generate_report(self) -> PositionReport:
        """Send the current position report through every notifier."""
        await self.refresh_price()
        report = self.controller.report()
        await self._send_alert(self.format_report(report), subject="📋 Position report")
        logger.info("Position report sent")
        return report

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run the keeper loop until cancelled."""
        interval = check_interval_minutes or self._config.keeper.check_interval_minutes
        logger.info("Starting keeper loop (checking every %d minutes)", interval)

        while True:
            try:
                await self.check_and_tend()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in keeper loop: %s", e)
                await asyncio.sleep(60)

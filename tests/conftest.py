"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import pytest

from flashlever.config import (
    AppConfig,
    ChainConfig,
    KeeperConfig,
    MarketConfig,
    NotificationsConfig,
    PaperMarketConfig,
    PriceOracleConfig,
    PythConfig,
    StrategyConfig,
    TelegramConfig,
)
from flashlever.constants import WAD
from flashlever.leverage import LeverageController
from flashlever.models import LeverageParams, Roles, RuntimeLimits
from flashlever.protocols.paper import PaperAccount, PaperLendingMarket, PaperSwapper

ASSET = "USDC"
COLLATERAL = "WSTETH"
EQUITY = 10_000 * WAD


# ---------------------------------------------------------------------------
# Strategy fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@dataclass
class PaperStrategy:
    controller: LeverageController
    market: PaperLendingMarket
    swapper: PaperSwapper
    account: PaperAccount
    clock: FakeClock


@pytest.fixture()
def sample_params() -> LeverageParams:
    return LeverageParams(
        target_leverage_ratio=3 * WAD,
        leverage_buffer=WAD // 4,
        max_leverage_ratio=4 * WAD,
    )


@pytest.fixture()
def sample_limits() -> RuntimeLimits:
    return RuntimeLimits(
        slippage_bps=0,
        deposit_limit=1_000_000 * WAD,
        max_gas_price_to_tend=100,
        min_tend_interval=3600,
        allowed_depositors=frozenset({"vault"}),
    )


@pytest.fixture()
def sample_roles() -> Roles:
    return Roles(
        management="mgmt",
        keepers=frozenset({"keeper"}),
        emergency_admin="emergency",
        host="vault",
    )


@pytest.fixture()
def sample_paper_config() -> PaperMarketConfig:
    return PaperMarketConfig(
        oracle_price=WAD,
        liquidation_threshold=9 * WAD // 10,
        flash_liquidity=1_000_000_000 * WAD,
        initial_balances={ASSET: EQUITY},
    )


@pytest.fixture()
def make_strategy(
    sample_params: LeverageParams,
    sample_limits: RuntimeLimits,
    sample_roles: Roles,
    sample_paper_config: PaperMarketConfig,
) -> Callable[..., PaperStrategy]:
    """Factory building a controller wired to a fresh paper market."""

    def _make(
        params: LeverageParams | None = None,
        limits: RuntimeLimits | None = None,
        paper: PaperMarketConfig | None = None,
        swap_fee_bps: int = 0,
    ) -> PaperStrategy:
        paper = paper or sample_paper_config
        account = PaperAccount(paper.initial_balances)
        market = PaperLendingMarket(account, paper, ASSET, COLLATERAL)
        swapper = PaperSwapper(account, market, ASSET, COLLATERAL, swap_fee_bps)
        clock = FakeClock()
        controller = LeverageController(
            market,
            swapper,
            account,
            asset=ASSET,
            collateral=COLLATERAL,
            params=params or sample_params,
            limits=limits or sample_limits,
            roles=sample_roles,
            clock=clock,
        )
        return PaperStrategy(controller, market, swapper, account, clock)

    return _make


@pytest.fixture()
def strategy(make_strategy: Callable[..., PaperStrategy]) -> PaperStrategy:
    return make_strategy()


@pytest.fixture()
def levered(strategy: PaperStrategy) -> PaperStrategy:
    """Strategy holding a 3x position: 30,000 collateral against 20,000 debt."""
    strategy.controller.deploy_funds(EQUITY, sender="vault")
    return strategy


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"WSTETH": "aaa111", "USDC": "ccc333"},
    )


@pytest.fixture()
def sample_app_config(
    sample_params: LeverageParams,
    sample_limits: RuntimeLimits,
    sample_roles: Roles,
    sample_paper_config: PaperMarketConfig,
) -> AppConfig:
    return AppConfig(
        strategy=StrategyConfig(
            asset=ASSET,
            collateral=COLLATERAL,
            leverage=sample_params,
            limits=sample_limits,
            roles=sample_roles,
        ),
        market=MarketConfig(kind="paper", paper=sample_paper_config),
        keeper=KeeperConfig(check_interval_minutes=5, sender="keeper"),
        chain=ChainConfig(),
        price_oracle=PriceOracleConfig(provider="pyth", pyth=PythConfig()),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    strategy:
      asset: USDC
      collateral: WSTETH
      leverage: {target: 3.0, buffer: 0.25, max: 4.0}
      limits:
        slippage_bps: 30
        deposit_limit: 1_000_000_000
        max_gas_price_to_tend: 50_000_000_000
        min_tend_interval: 3600
        allowed_depositors: [vault]
      roles:
        management: mgmt
        keepers: [keeper]
        emergency_admin: emergency
        host: vault
    market:
      kind: paper
      paper:
        oracle_price: 1.15
        liquidation_threshold: 0.93
        flash_liquidity: 5_000_000
        flash_premium_bps: 5
        initial_balances: {USDC: 10000}
    keeper:
      check_interval_minutes: 5
      sender: keeper
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {WSTETH: "aaa", USDC: "bbb"}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

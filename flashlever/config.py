"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import WAD
from .errors import ConfigurationError
from .leverage.params import validate_leverage_params, validate_limits
from .models import LeverageParams, Roles, RuntimeLimits

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyConfig:
    asset: str = ""
    collateral: str = ""
    leverage: LeverageParams = field(default_factory=LeverageParams)
    limits: RuntimeLimits = field(default_factory=RuntimeLimits)
    roles: Roles = field(default_factory=Roles)


@dataclass(frozen=True)
class PaperMarketConfig:
    oracle_price: int = WAD
    liquidation_threshold: int = 9 * WAD // 10
    max_ltv: int | None = None
    flash_liquidity: int = 0
    flash_premium_bps: int = 0
    swap_fee_bps: int = 0
    supply_cap: int | None = None
    borrow_cap: int | None = None
    initial_balances: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketConfig:
    kind: str = "paper"
    paper: PaperMarketConfig = field(default_factory=PaperMarketConfig)


@dataclass(frozen=True)
class KeeperConfig:
    check_interval_minutes: int = 15
    sender: str = ""


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    keeper: KeeperConfig = field(default_factory=KeeperConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------


def _to_wad(value: Any) -> int:
    """Convert a decimal multiple such as ``3.25`` to an exact WAD integer."""
    try:
        ratio = Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"Not a decimal ratio: {value!r}") from e
    if not ratio.is_finite():
        raise ConfigurationError(f"Not a finite ratio: {value!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = ratio * WAD
    if scaled != scaled.to_integral_value():
        raise ConfigurationError(f"Ratio {value!r} is finer than 18 decimal places")
    return int(scaled)


def _to_amount(value: Any) -> int:
    """Token amount in base units; YAML strings may use ``_`` separators."""
    try:
        return int(str(value).replace("_", ""))
    except ValueError as e:
        raise ConfigurationError(f"Not an integer amount: {value!r}") from e


def _optional_amount(value: Any) -> int | None:
    return None if value is None or value == "" else _to_amount(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_leverage(raw: dict[str, Any]) -> LeverageParams:
    return LeverageParams(
        target_leverage_ratio=_to_wad(raw.get("target", 0)),
        leverage_buffer=_to_wad(raw.get("buffer", 0)),
        max_leverage_ratio=_to_wad(raw.get("max", 0)),
    )


def _build_limits(raw: dict[str, Any]) -> RuntimeLimits:
    return RuntimeLimits(
        slippage_bps=int(raw.get("slippage_bps", 50)),
        deposit_limit=_to_amount(raw.get("deposit_limit", 0)),
        max_amount_to_swap=_optional_amount(raw.get("max_amount_to_swap")),
        min_amount_to_borrow=_to_amount(raw.get("min_amount_to_borrow", 0)),
        max_gas_price_to_tend=_to_amount(raw.get("max_gas_price_to_tend", 0)),
        min_tend_interval=int(raw.get("min_tend_interval", 0)),
        min_deploy_amount=_to_amount(raw.get("min_deploy_amount", 0)),
        allowed_depositors=frozenset(raw.get("allowed_depositors", [])),
    )


def _build_roles(raw: dict[str, Any]) -> Roles:
    return Roles(
        management=raw.get("management", ""),
        keepers=frozenset(raw.get("keepers", [])),
        emergency_admin=raw.get("emergency_admin", ""),
        host=raw.get("host", ""),
    )


def _build_strategy(raw: dict[str, Any]) -> StrategyConfig:
    return StrategyConfig(
        asset=raw.get("asset", ""),
        collateral=raw.get("collateral", ""),
        leverage=_build_leverage(raw.get("leverage", {})),
        limits=_build_limits(raw.get("limits", {})),
        roles=_build_roles(raw.get("roles", {})),
    )


def _build_market(raw: dict[str, Any]) -> MarketConfig:
    paper = raw.get("paper", {})
    max_ltv = paper.get("max_ltv")
    return MarketConfig(
        kind=raw.get("kind", "paper"),
        paper=PaperMarketConfig(
            oracle_price=_to_wad(paper.get("oracle_price", 1)),
            liquidation_threshold=_to_wad(paper.get("liquidation_threshold", "0.9")),
            max_ltv=None if max_ltv is None else _to_wad(max_ltv),
            flash_liquidity=_to_amount(paper.get("flash_liquidity", 0)),
            flash_premium_bps=int(paper.get("flash_premium_bps", 0)),
            swap_fee_bps=int(paper.get("swap_fee_bps", 0)),
            supply_cap=_optional_amount(paper.get("supply_cap")),
            borrow_cap=_optional_amount(paper.get("borrow_cap")),
            initial_balances={
                token: _to_amount(amount)
                for token, amount in paper.get("initial_balances", {}).items()
            },
        ),
    )


def _build_keeper(raw: dict[str, Any]) -> KeeperConfig:
    return KeeperConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
        sender=raw.get("sender", ""),
    )


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(url for url in raw.get("rpc_endpoints", []) if url),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        strategy=_build_strategy(raw.get("strategy", {})),
        market=_build_market(raw.get("market", {})),
        keeper=_build_keeper(raw.get("keeper", {})),
        chain=_build_chain(raw.get("chain", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    strategy = cfg.strategy
    if not strategy.asset or not strategy.collateral:
        raise ConfigurationError("Strategy asset and collateral must be configured")
    if strategy.asset == strategy.collateral:
        raise ConfigurationError("Strategy asset and collateral must differ")
    if not strategy.roles.management:
        raise ConfigurationError("A management role must be configured")

    validate_limits(strategy.limits)
    if cfg.market.kind == "paper":
        validate_leverage_params(
            strategy.leverage, cfg.market.paper.liquidation_threshold
        )

    keeper = cfg.keeper.sender
    if keeper and keeper not in strategy.roles.keepers and keeper != strategy.roles.management:
        raise ConfigurationError(f"Keeper sender '{keeper}' holds no keeper role")

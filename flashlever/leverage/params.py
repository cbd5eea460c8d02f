"""Parameter store — validated leverage parameters and runtime limits."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any

from ..constants import MAX_BPS, MIN_LEVERAGE_BUFFER, WAD
from ..errors import ConfigurationError
from ..models import LeverageParams, RuntimeLimits
from .accounting import implied_max_ltv

logger = logging.getLogger(__name__)

_LIMIT_FIELDS = {f.name for f in dataclasses.fields(RuntimeLimits)}


def validate_leverage_params(params: LeverageParams, liquidation_threshold: int) -> None:
    """Raise ``ConfigurationError`` unless ``params`` is a safe combination."""
    target = params.target_leverage_ratio
    buffer = params.leverage_buffer
    max_ratio = params.max_leverage_ratio

    idle = target == 0 and buffer == 0
    active = target >= WAD and buffer >= MIN_LEVERAGE_BUFFER and target > buffer
    if not (idle or active):
        raise ConfigurationError(
            f"Invalid target/buffer combination: target={target} buffer={buffer}"
        )
    if max_ratio < WAD:
        raise ConfigurationError(f"Max leverage ratio {max_ratio} is below 1x")
    if max_ratio < target + buffer:
        raise ConfigurationError(
            f"Max leverage ratio {max_ratio} is below target + buffer ({target + buffer})"
        )
    max_ltv = implied_max_ltv(max_ratio)
    if max_ltv >= liquidation_threshold:
        raise ConfigurationError(
            f"Max leverage ratio implies LTV {max_ltv}, not below the market's "
            f"liquidation threshold {liquidation_threshold}"
        )


def validate_limits(limits: RuntimeLimits) -> None:
    if not 0 <= limits.slippage_bps <= MAX_BPS:
        raise ConfigurationError(f"slippage_bps out of range: {limits.slippage_bps}")
    for name in (
        "deposit_limit",
        "min_amount_to_borrow",
        "max_gas_price_to_tend",
        "min_tend_interval",
        "min_deploy_amount",
    ):
        if getattr(limits, name) < 0:
            raise ConfigurationError(f"{name} must not be negative")
    if limits.max_amount_to_swap is not None and limits.max_amount_to_swap <= 0:
        raise ConfigurationError("max_amount_to_swap must be positive or unset")


class ParameterStore:
    """Owns the controller's mutable configuration.

    Values are frozen dataclasses; a setter validates the replacement in full
    before swapping it in, so a rejected update leaves no trace.
    """

    def __init__(self, params: LeverageParams, limits: RuntimeLimits) -> None:
        self._params = params
        self._limits = limits

    @property
    def params(self) -> LeverageParams:
        return self._params

    @property
    def limits(self) -> RuntimeLimits:
        return self._limits

    def set_leverage_params(
        self,
        target: int,
        buffer: int,
        max_ratio: int,
        liquidation_threshold: int,
    ) -> LeverageParams:
        params = LeverageParams(
            target_leverage_ratio=target,
            leverage_buffer=buffer,
            max_leverage_ratio=max_ratio,
        )
        validate_leverage_params(params, liquidation_threshold)
        self._params = params
        logger.info(
            "Leverage params set: target=%d buffer=%d max=%d", target, buffer, max_ratio
        )
        return params

    def update_limits(self, **changes: Any) -> RuntimeLimits:
        unknown = set(changes) - _LIMIT_FIELDS
        if unknown:
            raise ConfigurationError(f"Unknown limit field(s): {sorted(unknown)}")
        if "allowed_depositors" in changes:
            changes["allowed_depositors"] = frozenset(changes["allowed_depositors"])
        limits = dataclasses.replace(self._limits, **changes)
        validate_limits(limits)
        self._limits = limits
        logger.info("Runtime limits updated: %s", ", ".join(sorted(changes)))
        return limits

"""Price calculation for bulk adjustments.

Every new price written by a campaign comes from ``calculate_new_price``; the
preview shown before applying uses the same function, so an item that previews
as invalid is also skipped at apply time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from repricer.domain.core.enums import AdjustmentType, Rounding

MAX_PERCENT_VALUE = 1000
MAX_FIXED_VALUE = 10000
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class AdjustmentConfig:
    adjustment_type: AdjustmentType
    value: float
    rounding: Rounding = Rounding.NONE


@dataclass(frozen=True)
class PriceCalculation:
    old_price: float
    new_price: float
    valid: bool
    error_message: str | None = None


def validate_adjustment_config(config: AdjustmentConfig) -> tuple[bool, str | None]:
    if config.value < 0:
        return False, "Value cannot be negative"
    if config.adjustment_type.is_percent and config.value > MAX_PERCENT_VALUE:
        return False, f"Percentage must not exceed {MAX_PERCENT_VALUE}%"
    if not config.adjustment_type.is_percent and config.value > MAX_FIXED_VALUE:
        return False, f"Fixed amount must not exceed {MAX_FIXED_VALUE}"
    return True, None


def apply_rounding(price: float, rounding: Rounding) -> float:
    # prices under 1.00 floor to 0, so ROUND_99 / ROUND_95 can lift them
    if rounding is Rounding.ROUND_99:
        return math.floor(price) + 0.99
    if rounding is Rounding.ROUND_95:
        return math.floor(price) + 0.95
    return price


def round_to_two_decimals(price: float) -> float:
    """Half-up rounding of the exact binary value, same digits a JS ``toFixed(2)`` prints."""
    return float(Decimal(price).quantize(_CENT, rounding=ROUND_HALF_UP))


def _transform(old_price: float, config: AdjustmentConfig) -> float:
    value = config.value
    if config.adjustment_type is AdjustmentType.PERCENT_INCREASE:
        return old_price * (1 + value / 100)
    if config.adjustment_type is AdjustmentType.PERCENT_DECREASE:
        return old_price * (1 - value / 100)
    if config.adjustment_type is AdjustmentType.FIXED_INCREASE:
        return old_price + value
    if config.adjustment_type is AdjustmentType.FIXED_DECREASE:
        return old_price - value
    raise ValueError(f"Unknown adjustment type: {config.adjustment_type}")


def calculate_new_price(old_price: float, config: AdjustmentConfig) -> PriceCalculation:
    valid, error = validate_adjustment_config(config)
    if not valid:
        return PriceCalculation(old_price=old_price, new_price=old_price, valid=False, error_message=error)

    new_price = apply_rounding(_transform(old_price, config), config.rounding)
    if new_price <= 0:
        return PriceCalculation(
            old_price=old_price,
            new_price=old_price,
            valid=False,
            error_message="Resulting price must be greater than 0",
        )
    return PriceCalculation(old_price=old_price, new_price=round_to_two_decimals(new_price), valid=True)


def calculate_bulk_prices(
    variants: Iterable[tuple[str, float]],
    config: AdjustmentConfig,
) -> list[tuple[str, PriceCalculation]]:
    return [(variant_id, calculate_new_price(price, config)) for variant_id, price in variants]


def format_price(price: float) -> str:
    return f"{round_to_two_decimals(price):.2f}"

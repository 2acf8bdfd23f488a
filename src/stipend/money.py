"""Amount helpers: integer base units, coin-denominated display."""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR
from typing import Any


UNITS_PER_COIN = 100_000_000
_COIN_QUANT = Decimal("0.00000001")


def parse_base_units(value: Any, field_name: str, *, allow_zero: bool = False) -> int:
    """Parse an integer base-unit value from an int or a digit string."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer base-unit value")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip() and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise ValueError(f"{field_name} must be an integer base-unit value")
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValueError(f"{field_name} must be > 0" if not allow_zero else f"{field_name} must be >= 0")
    return parsed


def coins_to_units(value: Decimal | int | str) -> int:
    """Convert a coin amount to base units, rounding down (conservative)."""
    dec = Decimal(str(value)).quantize(_COIN_QUANT, rounding=ROUND_FLOOR)
    return int(dec * UNITS_PER_COIN)


def units_to_coins(value: int) -> Decimal:
    return (Decimal(value) / Decimal(UNITS_PER_COIN)).quantize(_COIN_QUANT)


def format_units(value: int) -> str:
    """Format base units as '<units> (<coins> coin)'."""
    return f"{value} ({units_to_coins(value)} coin)"

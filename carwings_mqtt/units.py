"""Distance formatting for the configured unit system."""

from __future__ import annotations

import enum
from decimal import ROUND_HALF_UP, Decimal

KM_PER_MILE = Decimal("1.60934")
_ONE_PLACE = Decimal("0.1")


class Units(enum.Enum):
    MILES = "miles"
    KM = "km"

    @classmethod
    def parse(cls, value: Units | str) -> Units:
        """Accept a Units member or one of "miles", "mi", "km" (any case)."""
        if isinstance(value, Units):
            return value
        name = str(value).strip().lower()
        if name in ("miles", "mi", "imperial"):
            return cls.MILES
        if name in ("km", "kilometers", "metric"):
            return cls.KM
        raise ValueError(f"unknown unit system: {value!r}")


def _round1(value: Decimal) -> Decimal:
    return value.quantize(_ONE_PLACE, rounding=ROUND_HALF_UP)


def format_distance(units: Units | str, value: float) -> str:
    """Render a raw distance in miles under ``units``.

    >>> format_distance("miles", 100)
    '100.0 mi'
    >>> format_distance("km", 100)
    '160.9 km'
    """
    system = Units.parse(units)
    # str() first so binary float noise does not leak into the rounding
    raw = Decimal(str(value))
    if system is Units.MILES:
        return f"{_round1(raw)} mi"
    return f"{_round1(raw * KM_PER_MILE)} km"


__all__ = ["KM_PER_MILE", "Units", "format_distance"]

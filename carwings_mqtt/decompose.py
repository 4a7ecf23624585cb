"""Snapshot -> PublishedFact decomposition.

Pure functions: the field order here is the order facts are published in.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from .core_types import BatteryStatus, DailyStatistics, PublishedFact
from .units import Units, format_distance

BATTERY_FIELDS = (
    "timestamp",
    "stateofcharge",
    "remaining",
    "capacity",
    "cruisingrangeacoff",
    "cruisingrangeacon",
    "remainingwh",
    "pluginstate",
    "chargingstatus",
    "timetofull/level1",
    "timetofull/level2",
    "timetofull/level2at6kw",
)

DAILY_FIELDS = (
    "date",
    "efficiency",
    "efficiencylevel",
    "efficiencyscale",
    "powerconsumedmotorlevel",
    "powerconsumedauxlevel",
    "powerregenerationlevel",
    "powerconsumedmotor",
    "powerconsumedaux",
    "powerregeneration",
)


def format_timestamp(ts: datetime | date) -> str:
    """Render ``YYYY-MM-DDTHH:MM:SS`` in local time, without a zone suffix.

    Built field by field rather than with strftime so the year is always
    four digits and the output does not depend on the C locale. A plain
    date renders at midnight.
    """
    if not isinstance(ts, datetime):
        ts = datetime.combine(ts, time())
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return (
        f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"
        f"T{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
    )


def format_int(value: int) -> str:
    return str(int(value))


def format_fixed2(value: float) -> str:
    return f"{float(value):.2f}"


def format_duration(value: timedelta) -> str:
    return str(value)


def battery_values(status: BatteryStatus, units: Units | str) -> tuple[str, ...]:
    ttf = status.time_to_full
    return (
        format_timestamp(status.timestamp),
        format_int(status.state_of_charge),
        format_int(status.remaining),
        format_int(status.capacity),
        format_distance(units, status.cruising_range_ac_off),
        format_distance(units, status.cruising_range_ac_on),
        str(status.remaining_wh),
        str(status.plugin_state),
        str(status.charging_status),
        format_duration(ttf.level1),
        format_duration(ttf.level2),
        format_duration(ttf.level2_at_6kw),
    )


def daily_values(stats: DailyStatistics) -> tuple[str, ...]:
    return (
        format_timestamp(stats.target_date),
        format_fixed2(stats.efficiency),
        format_int(stats.efficiency_level),
        str(stats.efficiency_scale),
        format_int(stats.power_consumed_motor_level),
        format_int(stats.power_consumed_aux_level),
        format_int(stats.power_regeneration_level),
        format_fixed2(stats.power_consumed_motor),
        format_fixed2(stats.power_consumed_aux),
        format_fixed2(stats.power_regeneration),
    )


def battery_facts(
    prefix: str, status: BatteryStatus, units: Units | str
) -> list[PublishedFact]:
    """Twelve retained facts under ``{prefix}/battery/``."""
    values = battery_values(status, units)
    return [
        PublishedFact(f"{prefix}/battery/{name}", value, True)
        for name, value in zip(BATTERY_FIELDS, values)
    ]


def daily_facts(prefix: str, stats: DailyStatistics) -> list[PublishedFact]:
    """Ten non-retained facts under ``{prefix}/daily/``."""
    values = daily_values(stats)
    return [
        PublishedFact(f"{prefix}/daily/{name}", value, False)
        for name, value in zip(DAILY_FIELDS, values)
    ]


__all__ = [
    "BATTERY_FIELDS",
    "DAILY_FIELDS",
    "battery_facts",
    "daily_facts",
    "format_duration",
    "format_fixed2",
    "format_int",
    "format_timestamp",
]

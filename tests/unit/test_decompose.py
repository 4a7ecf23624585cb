from datetime import date, datetime, timedelta, timezone

from carwings_mqtt.core_types import BatteryStatus, DailyStatistics, TimeToFull
from carwings_mqtt.decompose import (
    BATTERY_FIELDS,
    DAILY_FIELDS,
    battery_facts,
    daily_facts,
    format_timestamp,
)
from carwings_mqtt.units import Units
from tests.helpers.fakes import sample_battery, sample_daily


def test_timestamp_shape():
    assert format_timestamp(datetime(2023, 3, 5, 14, 7, 9)) == "2023-03-05T14:07:09"


def test_timestamp_drops_microseconds():
    assert format_timestamp(datetime(2023, 3, 5, 14, 7, 9, 999999)) == "2023-03-05T14:07:09"


def test_timestamp_zero_value_keeps_four_digit_year():
    assert format_timestamp(datetime(1, 1, 1)) == "0001-01-01T00:00:00"


def test_plain_date_renders_at_midnight():
    assert format_timestamp(date(2023, 3, 5)) == "2023-03-05T00:00:00"


def test_aware_timestamp_is_converted_to_local_time():
    aware = datetime(2023, 3, 5, 14, 7, 9, tzinfo=timezone.utc)
    expected = aware.astimezone()
    rendered = format_timestamp(aware)
    assert rendered == expected.strftime("%Y-%m-%dT%H:%M:%S")
    assert "+" not in rendered and not rendered.endswith("Z")


def test_battery_facts_order_and_values():
    facts = battery_facts("carwings", sample_battery(), Units.KM)

    assert [f.topic for f in facts] == [f"carwings/battery/{n}" for n in BATTERY_FIELDS]
    assert all(f.retained for f in facts)
    assert [f.value for f in facts] == [
        "2023-03-05T14:07:09",
        "85",
        "20",
        "24",
        "160.9 km",
        "145.6 km",
        "19200",
        "connected",
        "charging",
        "8:00:00",
        "4:30:00",
        "2:15:00",
    ]


def test_battery_ranges_follow_unit_system():
    facts = {f.topic: f.value for f in battery_facts("t", sample_battery(), "miles")}
    assert facts["t/battery/cruisingrangeacoff"] == "100.0 mi"
    assert facts["t/battery/cruisingrangeacon"] == "90.5 mi"


def test_battery_fact_count():
    assert len(battery_facts("t", BatteryStatus.empty(), Units.KM)) == 12


def test_empty_battery_snapshot_still_renders():
    values = [f.value for f in battery_facts("t", BatteryStatus.empty(), Units.KM)]
    assert values[0] == "0001-01-01T00:00:00"
    assert values[1:4] == ["0", "0", "0"]
    assert values[7:9] == ["not connected", "not charging"]
    assert values[9:] == ["0:00:00"] * 3


def test_daily_facts_order_and_values():
    facts = daily_facts("carwings", sample_daily())

    assert [f.topic for f in facts] == [f"carwings/daily/{n}" for n in DAILY_FIELDS]
    assert not any(f.retained for f in facts)
    assert [f.value for f in facts] == [
        "2023-03-05T00:00:00",
        "6.50",
        "3",
        "km/kWh",
        "4",
        "2",
        "5",
        "12.30",
        "1.25",
        "3.00",
    ]


def test_daily_fact_count():
    assert len(daily_facts("t", DailyStatistics.empty())) == 10


def test_long_time_to_full_renders_days():
    status = BatteryStatus(time_to_full=TimeToFull(level1=timedelta(hours=26)))
    facts = {f.topic: f.value for f in battery_facts("t", status, Units.KM)}
    assert facts["t/battery/timetofull/level1"] == "1 day, 2:00:00"

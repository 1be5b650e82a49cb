import datetime as dt

import pytest

import usage
from errors import ValidationError
from usage import IntervalReading, UsageProfile


def test_hourly_timeline_handles_leap_years():
    assert len(usage.hourly_timeline(2025)) == 8760
    assert len(usage.hourly_timeline(2024)) == 8784
    assert usage.hourly_timeline(2025)[-1] == dt.datetime(2025, 12, 31, 23)


def test_validate_distribution_accepts_percentages():
    fractions = usage.validate_distribution([100 / 12] * 12)
    assert sum(fractions) == pytest.approx(1.0)
    assert fractions[0] == pytest.approx(1 / 12)


@pytest.mark.parametrize("distribution", [
    None,
    [0.1] * 11,
    [0.05] * 12,
    [0.2, -0.1] + [0.09] * 10,
    ["a"] * 12,
])
def test_validate_distribution_rejects(distribution):
    with pytest.raises(ValidationError) as excinfo:
        usage.validate_distribution(distribution)
    assert excinfo.value.field == "usage_distribution"


def test_default_distribution_is_winter_heavy():
    monthly = UsageProfile(annual_kwh=9000).monthly_kwh(2025)
    assert sum(monthly) == pytest.approx(9000)
    assert monthly[0] > monthly[4]


def test_tiered_plans_assume_level_usage():
    monthly = UsageProfile(annual_kwh=7200).monthly_kwh(2025, "tiered")
    assert monthly == pytest.approx([600.0] * 12)


def test_explicit_distribution_wins_over_plan_default():
    profile = UsageProfile(annual_kwh=1200, monthly_distribution=[1] + [0] * 11)
    assert profile.monthly_kwh(2025, "tiered")[0] == pytest.approx(1200)


def test_hourly_usage_sums_to_monthly_totals():
    profile = UsageProfile(annual_kwh=9000)
    hourly = profile.hourly_kwh(2025)
    assert len(hourly) == 8760
    assert sum(hourly) == pytest.approx(9000)
    assert usage.monthly_totals(hourly, 2025) == pytest.approx(profile.monthly_kwh(2025))


def test_usage_peaks_in_the_evening():
    hourly = UsageProfile(annual_kwh=9000).hourly_kwh(2025)
    day = hourly[:24]
    assert day.index(max(day)) == 18


def test_hourly_production_is_daylight_only():
    hourly = usage.hourly_production([310.0] * 12, 2025)
    assert sum(hourly) == pytest.approx(310.0 * 12)
    assert hourly[2] == 0.0
    assert hourly[13] > 0.0


@pytest.mark.parametrize("annual", [-1, float("nan"), "lots"])
def test_bad_annual_usage(annual):
    with pytest.raises(ValidationError):
        UsageProfile(annual_kwh=annual)


def test_interval_readings_in_any_shape():
    profile = UsageProfile(interval_data=[
        {"timestamp": "2025-01-01T00:00:00", "kwh": 1.5},
        ("2025-01-01T00:30:00", 0.5),
        IntervalReading(dt.datetime(2025, 2, 1, 18), 3.0),
    ])
    hourly = profile.hourly_kwh(2025)
    assert profile.has_interval_data
    assert hourly[0] == pytest.approx(2.0)
    assert hourly[31 * 24 + 18] == pytest.approx(3.0)
    monthly = profile.monthly_kwh(2025)
    assert monthly[0] == pytest.approx(2.0)
    assert monthly[1] == pytest.approx(3.0)
    assert sum(monthly[2:]) == 0


def test_interval_coverage():
    readings = [(dt.datetime(2025, 1, 1) + dt.timedelta(hours=h), 1.0) for h in range(4380)]
    assert UsageProfile(interval_data=readings).interval_coverage(2025) == pytest.approx(0.5)
    assert UsageProfile(annual_kwh=9000).interval_coverage(2025) == 1.0


def test_interval_readings_from_another_year_keep_their_calendar_slot():
    profile = UsageProfile(interval_data=[(dt.datetime(2023, 7, 4, 12), 2.0)])
    hourly = profile.hourly_kwh(2025)
    slot = (dt.datetime(2025, 7, 4, 12) - dt.datetime(2025, 1, 1)).days * 24 + 12
    assert hourly[slot] == pytest.approx(2.0)


def test_leap_day_readings_are_dropped_in_common_years():
    profile = UsageProfile(interval_data=[(dt.datetime(2024, 2, 29, 8), 5.0)])
    assert sum(profile.hourly_kwh(2025)) == 0


def test_interval_timestamps_lose_their_timezone():
    reading = usage.parse_reading(("2025-03-01T10:00:00+00:00", 1))
    assert reading.timestamp == dt.datetime(2025, 3, 1, 10)


@pytest.mark.parametrize("item", [
    ("yesterday", 1.0),
    (12345, 1.0),
    ("2025-01-01T00:00:00", -1.0),
    ("2025-01-01T00:00:00", "n/a"),
])
def test_bad_interval_readings(item):
    with pytest.raises(ValidationError) as excinfo:
        UsageProfile(interval_data=[item])
    assert excinfo.value.field == "interval_data"

"""Household usage profiles and hourly shaping.

A profile is either an annual kWh figure spread over the year with a
monthly distribution and a daily load shape, or a list of interval
readings. Interval readings, when present, replace the synthetic shape.
"""

from __future__ import annotations

import calendar
import datetime as dt
import logging
import math
from dataclasses import dataclass

import numpy as np

from constants import (
    DISTRIBUTION_TOLERANCE,
    HOURLY_PRODUCTION_SHAPE,
    HOURLY_USAGE_SHAPE,
    UNIFORM_USAGE_WEIGHTS,
    USAGE_SEASONAL_WEIGHTS,
)
from errors import ValidationError

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntervalReading:
    timestamp: dt.datetime
    kwh: float


def normalize_weights(weights) -> list:
    values = np.asarray(weights, dtype=float)
    return [float(v) for v in values / values.sum()]


def canonical_distribution(plan_type: str = None) -> list:
    """Default monthly usage split; tiered plans assume level usage."""
    if plan_type == "tiered":
        return normalize_weights(UNIFORM_USAGE_WEIGHTS)
    return normalize_weights(USAGE_SEASONAL_WEIGHTS)


def validate_distribution(distribution) -> list:
    """Check a 12-month distribution and return it as fractions.

    Accepts fractions summing to 1.0 or percentages summing to 100.
    """
    if distribution is None or len(distribution) != 12:
        raise ValidationError("Usage distribution must have 12 monthly values",
                              field="usage_distribution")
    try:
        values = [float(v) for v in distribution]
    except (TypeError, ValueError) as err:
        raise ValidationError("Usage distribution must be numeric",
                              field="usage_distribution") from err
    if any(not math.isfinite(v) or v < 0 for v in values):
        raise ValidationError("Usage distribution values must be non-negative",
                              field="usage_distribution")

    total = sum(values)
    if abs(total - 1.0) <= DISTRIBUTION_TOLERANCE:
        return [v / total for v in values]
    if abs(total - 100.0) <= DISTRIBUTION_TOLERANCE * 100:
        return [v / total for v in values]
    raise ValidationError("Usage distribution sums to %.3f, expected 1.0 or 100" % total,
                          field="usage_distribution")


def parse_reading(item) -> IntervalReading:
    if isinstance(item, IntervalReading):
        reading = item
    elif isinstance(item, dict):
        reading = IntervalReading(item.get("timestamp"), item.get("kwh"))
    else:
        timestamp, kwh = item
        reading = IntervalReading(timestamp, kwh)

    timestamp = reading.timestamp
    if isinstance(timestamp, str):
        try:
            timestamp = dt.datetime.fromisoformat(timestamp)
        except ValueError as err:
            raise ValidationError("Bad interval timestamp %r" % reading.timestamp,
                                  field="interval_data") from err
    if not isinstance(timestamp, dt.datetime):
        raise ValidationError("Interval timestamp must be a datetime", field="interval_data")
    try:
        kwh = float(reading.kwh)
    except (TypeError, ValueError) as err:
        raise ValidationError("Interval kWh must be numeric", field="interval_data") from err
    if not math.isfinite(kwh) or kwh < 0:
        raise ValidationError("Interval kWh must be non-negative", field="interval_data")
    return IntervalReading(timestamp.replace(tzinfo=None), kwh)


def hourly_timeline(year: int) -> list:
    """Start of every hour of ``year``."""
    start = dt.datetime(year, 1, 1)
    hours = (366 if calendar.isleap(year) else 365) * 24
    return [start + dt.timedelta(hours=h) for h in range(hours)]


def spread_monthly_to_hours(monthly, year: int, shape) -> list:
    """Spread 12 monthly totals over every hour of the year.

    Each day of a month gets an equal share, split across hours by ``shape``.
    """
    weights = np.asarray(normalize_weights(shape))
    hourly = []
    for month in range(12):
        days = calendar.monthrange(year, month + 1)[1]
        daily = weights * (monthly[month] / days)
        for _ in range(days):
            hourly.extend(float(v) for v in daily)
    return hourly


def hourly_production(monthly_kwh, year: int) -> list:
    return spread_monthly_to_hours(monthly_kwh, year, HOURLY_PRODUCTION_SHAPE)


@dataclass
class UsageProfile:
    """Annual consumption plus how it is spread over the year.

    Args:
        annual_kwh: Yearly usage; ignored when ``interval_data`` is given.
        monthly_distribution: 12 fractions (or percentages); defaults to the
            canonical distribution for the rate plan.
        interval_data: IntervalReading objects, (timestamp, kWh) pairs or
            dicts with ``timestamp`` and ``kwh`` keys.
    """

    annual_kwh: float = 0.0
    monthly_distribution: list = None
    interval_data: list = None

    def __post_init__(self):
        if self.interval_data:
            self.interval_data = [parse_reading(r) for r in self.interval_data]
        else:
            self.interval_data = None
            try:
                annual = float(self.annual_kwh)
            except (TypeError, ValueError) as err:
                raise ValidationError("Annual usage must be numeric", field="annual_kwh") from err
            if not math.isfinite(annual) or annual < 0:
                raise ValidationError("Annual usage must be a non-negative number",
                                      field="annual_kwh")
            self.annual_kwh = annual
        if self.monthly_distribution is not None:
            self.monthly_distribution = validate_distribution(self.monthly_distribution)

    @property
    def has_interval_data(self) -> bool:
        return bool(self.interval_data)

    def distribution(self, plan_type: str = None) -> list:
        if self.monthly_distribution is not None:
            return list(self.monthly_distribution)
        return canonical_distribution(plan_type)

    def hourly_kwh(self, year: int, plan_type: str = None) -> list:
        if self.has_interval_data:
            return self._bucket_intervals(year)
        return spread_monthly_to_hours(self.monthly_kwh(year, plan_type), year,
                                       HOURLY_USAGE_SHAPE)

    def monthly_kwh(self, year: int, plan_type: str = None) -> list:
        if self.has_interval_data:
            hourly = self._bucket_intervals(year)
            return monthly_totals(hourly, year)
        return [self.annual_kwh * share for share in self.distribution(plan_type)]

    def total_kwh(self, year: int, plan_type: str = None) -> float:
        return sum(self.monthly_kwh(year, plan_type))

    def interval_coverage(self, year: int) -> float:
        """Share of the hours of ``year`` that have at least one reading."""
        if not self.has_interval_data:
            return 1.0
        _, covered = self._slot_readings(year)
        return covered / len(hourly_timeline(year))

    def _bucket_intervals(self, year: int) -> list:
        hourly, covered = self._slot_readings(year)
        if covered < len(hourly):
            _LOGGER.warning("Interval data covers %d of %d hours; missing hours count as zero",
                            covered, len(hourly))
        return hourly

    def _slot_readings(self, year: int) -> tuple:
        """Sum readings into the hours of ``year`` by month, day and hour.

        Readings from other years are aligned on their calendar position.
        Hours with no reading count as zero usage. Returns the hourly list
        and the number of hours that had a reading.
        """
        timeline = hourly_timeline(year)
        slots = {(t.month, t.day, t.hour): i for i, t in enumerate(timeline)}
        hourly = [0.0] * len(timeline)
        covered = set()
        dropped = 0
        for reading in self.interval_data:
            ts = reading.timestamp
            slot = slots.get((ts.month, ts.day, ts.hour))
            if slot is None:
                dropped += 1
                continue
            hourly[slot] += reading.kwh
            covered.add(slot)
        if dropped:
            _LOGGER.warning("Dropped %d interval readings with no matching hour in %d",
                            dropped, year)
        return hourly, len(covered)


def monthly_totals(hourly, year: int) -> list:
    totals = [0.0] * 12
    for when, value in zip(hourly_timeline(year), hourly):
        totals[when.month - 1] += value
    return totals

"""Electricity rate plans.

Plans are immutable reference data built once from the tables in
constants.py. Every plan prices energy through ``price_at``, which takes
either the start of an hourly period (a datetime) or a month index (0-11)
for monthly billing.

Regions with their own solar program are not priced through a plan at all:
``select_pricing_strategy`` returns a separate strategy for them and the
simulation dispatches on its type.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from constants import (
    FLAT_RATE,
    SOLAR_CLUB,
    SOLAR_CLUB_REGIONS,
    SUMMER_MONTHS,
    TIERED_EXPORT_PREMIUM,
    TIERED_RATES,
    TOU_PERIOD_DISTRIBUTION,
    TOU_RATES,
    ULO_PERIOD_DISTRIBUTION,
    ULO_RATES,
)
from errors import ReferenceDataError, ValidationError

DEFAULT_PLAN_ID = "tou"


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def easter_sunday(year: int) -> dt.date:
    """Gregorian Easter (anonymous algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return dt.date(year, month, day + 1)


def _nth_monday(day: dt.date, first_day: int) -> bool:
    """True if ``day`` is the Monday falling in [first_day, first_day + 6]."""
    return day.weekday() == 0 and first_day <= day.day <= first_day + 6


def is_statutory_holiday(day: dt.date) -> bool:
    """Ontario statutory holidays billed at weekend rates."""
    if (day.month, day.day) in ((1, 1), (7, 1), (12, 25), (12, 26)):
        return True
    if day.month == 2 and _nth_monday(day, 15):    # Family Day
        return True
    if day.month == 5 and _nth_monday(day, 18):    # Victoria Day
        return True
    if day.month == 8 and _nth_monday(day, 1):     # Civic Holiday
        return True
    if day.month == 9 and _nth_monday(day, 1):     # Labour Day
        return True
    if day.month == 10 and _nth_monday(day, 8):    # Thanksgiving
        return True
    if day.month in (3, 4) and day == easter_sunday(day.year) - dt.timedelta(days=2):
        return True
    return False


def holidays(year: int) -> list:
    day = dt.date(year, 1, 1)
    found = []
    while day.year == year:
        if is_statutory_holiday(day):
            found.append(day)
        day += dt.timedelta(days=1)
    return found


def is_off_peak_day(day: dt.date) -> bool:
    return day.weekday() >= 5 or is_statutory_holiday(day)


def is_summer(month: int) -> bool:
    """``month`` is 1-12."""
    return month in SUMMER_MONTHS


# ---------------------------------------------------------------------------
# Plan shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateWindow:
    name: str
    start_hour: int
    end_hour: int
    rate: float

    def covers(self, hour: int) -> bool:
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # Wraps past midnight
        return hour >= self.start_hour or hour < self.end_hour


@dataclass(frozen=True)
class DaySchedule:
    windows: tuple

    def window_at(self, hour: int) -> RateWindow:
        for window in self.windows:
            if window.covers(hour):
                return window
        raise ValidationError("No rate window covers hour %d" % hour, field="rate_plan")

    def validate(self) -> None:
        for hour in range(24):
            matches = [w for w in self.windows if w.covers(hour)]
            if len(matches) != 1:
                raise ValidationError("Hour %d is covered by %d rate windows"
                                      % (hour, len(matches)), field="rate_plan")


class RatePlan:
    """Interface shared by every plan shape.

    Concrete plans are frozen dataclasses with ``id`` and ``name`` fields.
    """

    plan_type = None
    time_windowed = False

    def import_rate(self, when: dt.datetime, month_to_date_kwh: float = 0.0) -> float:
        raise NotImplementedError

    def export_rate(self, when: dt.datetime) -> float:
        return self.import_rate(when)

    def window_name(self, when: dt.datetime) -> str:
        return "flat"

    def monthly_rate(self, month_index: int) -> float:
        """Average import rate used for monthly billing."""
        raise NotImplementedError

    def monthly_export_rate(self, month_index: int) -> float:
        return self.monthly_rate(month_index)

    def price_at(self, period, kwh: float, month_to_date_kwh: float = 0.0) -> float:
        """Cost of importing ``kwh`` in a period.

        Args:
            period: Start of an hourly period (datetime) or a month index 0-11.
            kwh: Energy drawn from the grid in the period.
            month_to_date_kwh: Grid energy already billed earlier in the month.
        """
        if isinstance(period, dt.datetime):
            return kwh * self.import_rate(period, month_to_date_kwh)
        return kwh * self.monthly_rate(_month_index(period))


def _month_index(period) -> int:
    if isinstance(period, bool) or not isinstance(period, int) or not 0 <= period <= 11:
        raise ValidationError("Month index must be an integer 0-11, got %r" % (period,),
                              field="period")
    return period


@dataclass(frozen=True)
class FlatRatePlan(RatePlan):
    id: str
    name: str
    rate: float

    plan_type = "flat"

    def import_rate(self, when, month_to_date_kwh=0.0):
        return self.rate

    def monthly_rate(self, month_index):
        return self.rate


@dataclass(frozen=True)
class TimeOfUsePlan(RatePlan):
    """Weekday windows that change between summer and winter.

    Weekends and statutory holidays use the ``weekend`` schedule.
    """

    id: str
    name: str
    summer: DaySchedule
    winter: DaySchedule
    weekend: DaySchedule
    period_distribution: dict

    plan_type = "tou"
    time_windowed = True

    def window(self, when: dt.datetime) -> RateWindow:
        if is_off_peak_day(when.date()):
            schedule = self.weekend
        elif is_summer(when.month):
            schedule = self.summer
        else:
            schedule = self.winter
        return schedule.window_at(when.hour)

    def window_name(self, when):
        return self.window(when).name

    def import_rate(self, when, month_to_date_kwh=0.0):
        return self.window(when).rate

    def rate_for(self, window_name: str) -> float:
        for schedule in (self.winter, self.summer, self.weekend):
            for window in schedule.windows:
                if window.name == window_name:
                    return window.rate
        raise ValidationError("Plan %s has no %s window" % (self.id, window_name),
                              field="rate_plan")

    def monthly_rate(self, month_index):
        total = sum(self.period_distribution.values())
        return sum(share * self.rate_for(name)
                   for name, share in self.period_distribution.items()) / total


@dataclass(frozen=True)
class UltraLowOvernightPlan(TimeOfUsePlan):
    plan_type = "ulo"


@dataclass(frozen=True)
class TieredPlan(RatePlan):
    """Lower rate up to a monthly threshold, higher rate above it."""

    id: str
    name: str
    tier1_rate: float
    tier2_rate: float
    threshold_kwh: float
    export_premium: float = TIERED_EXPORT_PREMIUM

    plan_type = "tiered"

    def tier_split(self, kwh: float, month_to_date_kwh: float = 0.0) -> tuple:
        """(tier 1 kWh, tier 2 kWh). Usage equal to the threshold stays in tier 1."""
        room = max(0.0, self.threshold_kwh - month_to_date_kwh)
        tier1 = min(kwh, room)
        return tier1, kwh - tier1

    def import_rate(self, when, month_to_date_kwh=0.0):
        if month_to_date_kwh >= self.threshold_kwh:
            return self.tier2_rate
        return self.tier1_rate

    def export_rate(self, when):
        return self.tier1_rate + self.export_premium

    def monthly_rate(self, month_index):
        return self.tier1_rate

    def monthly_export_rate(self, month_index):
        return self.tier1_rate + self.export_premium

    def price_at(self, period, kwh, month_to_date_kwh=0.0):
        if not isinstance(period, dt.datetime):
            _month_index(period)
        tier1, tier2 = self.tier_split(kwh, month_to_date_kwh)
        return tier1 * self.tier1_rate + tier2 * self.tier2_rate


@dataclass(frozen=True)
class ProvincialProgramPlan(RatePlan):
    """Solar club style settlement: seasonal export credit, flat import rate."""

    id: str
    name: str
    high_export_rate: float
    low_rate: float
    high_months: tuple
    cash_back_pct: float

    plan_type = "provincial"

    def is_high_month(self, month_index: int) -> bool:
        return (month_index + 1) in self.high_months

    def import_rate(self, when, month_to_date_kwh=0.0):
        return self.low_rate

    def export_rate(self, when):
        return self.monthly_export_rate(when.month - 1)

    def monthly_rate(self, month_index):
        return self.low_rate

    def monthly_export_rate(self, month_index):
        return self.high_export_rate if self.is_high_month(month_index) else self.low_rate


# ---------------------------------------------------------------------------
# Reference plans
# ---------------------------------------------------------------------------

def _windows(*spec) -> DaySchedule:
    schedule = DaySchedule(tuple(RateWindow(name, start, end, rate)
                                 for name, start, end, rate in spec))
    schedule.validate()
    return schedule


FLAT_PLAN = FlatRatePlan(id="flat", name="Flat rate", rate=FLAT_RATE)

TOU_PLAN = TimeOfUsePlan(
    id="tou",
    name="Time-of-Use",
    winter=_windows(
        ("off_peak", 19, 7, TOU_RATES["off_peak"]),
        ("on_peak", 7, 11, TOU_RATES["on_peak"]),
        ("mid_peak", 11, 17, TOU_RATES["mid_peak"]),
        ("on_peak", 17, 19, TOU_RATES["on_peak"]),
    ),
    summer=_windows(
        ("off_peak", 19, 7, TOU_RATES["off_peak"]),
        ("mid_peak", 7, 11, TOU_RATES["mid_peak"]),
        ("on_peak", 11, 17, TOU_RATES["on_peak"]),
        ("mid_peak", 17, 19, TOU_RATES["mid_peak"]),
    ),
    weekend=_windows(("off_peak", 0, 24, TOU_RATES["off_peak"])),
    period_distribution=dict(TOU_PERIOD_DISTRIBUTION),
)

_ULO_WEEKDAY = _windows(
    ("ultra_low", 23, 7, ULO_RATES["ultra_low"]),
    ("mid_peak", 7, 16, ULO_RATES["mid_peak"]),
    ("on_peak", 16, 21, ULO_RATES["on_peak"]),
    ("mid_peak", 21, 23, ULO_RATES["mid_peak"]),
)

ULO_PLAN = UltraLowOvernightPlan(
    id="ulo",
    name="Ultra-Low Overnight",
    winter=_ULO_WEEKDAY,
    summer=_ULO_WEEKDAY,
    weekend=_windows(
        ("ultra_low", 23, 7, ULO_RATES["ultra_low"]),
        ("weekend_off_peak", 7, 23, ULO_RATES["weekend_off_peak"]),
    ),
    period_distribution=dict(ULO_PERIOD_DISTRIBUTION),
)

TIERED_PLAN = TieredPlan(
    id="tiered",
    name="Tiered",
    tier1_rate=TIERED_RATES["tier1"],
    tier2_rate=TIERED_RATES["tier2"],
    threshold_kwh=TIERED_RATES["threshold_kwh"],
)

SOLAR_CLUB_PLAN = ProvincialProgramPlan(
    id="solar_club",
    name="Solar Club",
    high_export_rate=SOLAR_CLUB["high_export_rate"],
    low_rate=SOLAR_CLUB["low_rate"],
    high_months=tuple(SOLAR_CLUB["high_months"]),
    cash_back_pct=SOLAR_CLUB["cash_back_pct"],
)

RATE_PLANS = {plan.id: plan for plan in (FLAT_PLAN, TOU_PLAN, ULO_PLAN, TIERED_PLAN)}


def get_rate_plan(plan_id: str = None) -> RatePlan:
    """Look up a plan by id. No id selects Time-of-Use; an unknown id is an error."""
    if plan_id is None or str(plan_id).strip() == "":
        return RATE_PLANS[DEFAULT_PLAN_ID]
    plan = RATE_PLANS.get(str(plan_id).strip().lower())
    if plan is None:
        raise ReferenceDataError("Unknown rate plan %r (expected one of %s)"
                                 % (plan_id, ", ".join(sorted(RATE_PLANS))), field="rate_plan")
    return plan


def make_tiered_plan(tier1_rate: float, tier2_rate: float, threshold_kwh: float) -> TieredPlan:
    """Tiered plan with caller-supplied rates ($/kWh) and monthly threshold."""
    if tier1_rate < 0 or tier2_rate < 0:
        raise ValidationError("Tier rates cannot be negative", field="rate_plan")
    if threshold_kwh <= 0:
        raise ValidationError("Tier threshold must be positive", field="rate_plan")
    return TieredPlan(id="tiered", name="Tiered", tier1_rate=tier1_rate,
                      tier2_rate=tier2_rate, threshold_kwh=threshold_kwh)


def hourly_rates(plan: RatePlan, day: dt.date) -> list:
    return [plan.import_rate(dt.datetime.combine(day, dt.time(hour))) for hour in range(24)]


def cheapest_hours(plan: RatePlan, day: dt.date, count: int = 4) -> list:
    """Hours of ``day`` with the lowest import rate, earliest first on ties."""
    rates = hourly_rates(plan, day)
    return sorted(range(24), key=lambda h: (rates[h], h))[:count]


def most_expensive_hours(plan: RatePlan, day: dt.date, count: int = 4) -> list:
    rates = hourly_rates(plan, day)
    return sorted(range(24), key=lambda h: (-rates[h], h))[:count]


# ---------------------------------------------------------------------------
# Pricing strategy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenericPricing:
    """Net metering against an ordinary rate plan."""

    plan: RatePlan


@dataclass(frozen=True)
class ProvincialProgram:
    """A region whose solar program has its own settlement rules."""

    region_code: str
    snow_loss_factor: float = SOLAR_CLUB["snow_loss_factor"]
    rules: ProvincialProgramPlan = SOLAR_CLUB_PLAN


def select_pricing_strategy(region: str = None, plan_id: str = None,
                            snow_loss_factor: float = None,
                            plan: RatePlan = None):
    """Pick how a request is priced.

    A region with a provincial program always gets that program; any other
    region is priced on ``plan`` or the plan named by ``plan_id``.
    """
    code = (region or "").strip().upper()
    if code in SOLAR_CLUB_REGIONS:
        if snow_loss_factor is None:
            snow_loss_factor = SOLAR_CLUB["snow_loss_factor"]
        if not 0 <= snow_loss_factor < 1:
            raise ValidationError("Snow loss factor must be in [0, 1)", field="snow_loss_factor")
        return ProvincialProgram(region_code=code, snow_loss_factor=snow_loss_factor)
    return GenericPricing(plan=plan or get_rate_plan(plan_id))

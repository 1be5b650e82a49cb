"""Simplified annual peak shaving.

Annual usage is split into rate-period buckets (on peak, mid peak, off peak
and so on) by a fixed distribution, and into day and night halves. Solar
offsets daytime usage only, priciest buckets first; what it produces beyond
daytime usage charges the battery, which then covers what is left.
No hourly simulation is involved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from constants import BATTERY_MAX_CYCLES_PER_YEAR, DAYTIME_USAGE_SHARE, PERIOD_PRIORITY
from errors import ValidationError
from utils import calculate_payback

_LOGGER = logging.getLogger(__name__)


@dataclass
class PeakShavingResult:
    usage_by_period: dict
    solar_offset_by_period: dict
    battery_offset_by_period: dict
    grid_by_period: dict
    rates: dict
    baseline_cost: float
    cost_after_solar: float
    cost_after_battery: float
    solar_surplus_kwh: float
    battery_discharge_kwh: float
    battery_cycles: float
    payback_years: float = None

    @property
    def solar_savings(self) -> float:
        return self.baseline_cost - self.cost_after_solar

    @property
    def battery_savings(self) -> float:
        return self.cost_after_solar - self.cost_after_battery

    @property
    def annual_savings(self) -> float:
        return self.baseline_cost - self.cost_after_battery

    @property
    def monthly_savings(self) -> float:
        return self.annual_savings / 12

    def to_dict(self) -> dict:
        return {
            "usage_by_period": dict(self.usage_by_period),
            "solar_offset_by_period": dict(self.solar_offset_by_period),
            "battery_offset_by_period": dict(self.battery_offset_by_period),
            "grid_by_period": dict(self.grid_by_period),
            "baseline_cost": self.baseline_cost,
            "cost_after_solar": self.cost_after_solar,
            "cost_after_battery": self.cost_after_battery,
            "annual_savings": self.annual_savings,
            "monthly_savings": self.monthly_savings,
            "battery_discharge_kwh": self.battery_discharge_kwh,
            "battery_cycles": self.battery_cycles,
            "payback_years": self.payback_years,
        }


def period_rates(plan) -> dict:
    return {name: plan.rate_for(name) for name in plan.period_distribution}


def split_usage(annual_kwh: float, distribution: dict) -> dict:
    """kWh per period from a percentage (or fraction) distribution."""
    total = sum(distribution.values())
    if total <= 0:
        raise ValidationError("Period distribution must be positive", field="distribution")
    return {name: annual_kwh * share / total for name, share in distribution.items()}


def _by_price(periods, rates) -> list:
    """Periods from most to least expensive; equal prices keep priority order."""
    rank = {name: i for i, name in enumerate(PERIOD_PRIORITY)}
    return sorted(periods, key=lambda name: (-rates[name], rank.get(name, len(rank))))


def offset_priciest_first(remaining: dict, rates: dict, energy_kwh: float) -> dict:
    offsets = dict.fromkeys(remaining, 0.0)
    for name in _by_price(remaining, rates):
        if energy_kwh <= 0:
            break
        used = min(remaining[name], energy_kwh)
        offsets[name] = used
        energy_kwh -= used
    return offsets


def offset_by_priority(remaining: dict, energy_kwh: float) -> dict:
    offsets = dict.fromkeys(remaining, 0.0)
    order = [name for name in PERIOD_PRIORITY if name in remaining]
    order += [name for name in remaining if name not in order]
    for name in order:
        if energy_kwh <= 0:
            break
        used = min(remaining[name], energy_kwh)
        offsets[name] = used
        energy_kwh -= used
    return offsets


def offset_pro_rata(remaining: dict, energy_kwh: float) -> dict:
    total = sum(remaining.values())
    if total <= 0:
        return dict.fromkeys(remaining, 0.0)
    share = min(1.0, energy_kwh / total)
    return {name: kwh * share for name, kwh in remaining.items()}


def _cost(usage: dict, rates: dict) -> float:
    return sum(kwh * rates[name] for name, kwh in usage.items())


def calculate_peak_shaving(annual_usage_kwh: float, solar_production_kwh: float, plan,
                           battery=None, ai_mode: bool = False, distribution: dict = None,
                           net_cost: float = None) -> PeakShavingResult:
    """Annual period-bucket savings for solar plus an optional battery.

    Args:
        annual_usage_kwh: Household usage per year, must be positive.
        solar_production_kwh: Annual solar production.
        plan: A time-of-use style plan (TOU or ULO) with a period distribution.
        battery: Optional BatterySpec.
        ai_mode: Discharge into periods in strict priority order instead of
            spreading discharge pro rata.
        distribution: Override of the plan's usage split by period (%).
        net_cost: System cost after incentives, for the payback.
    """
    if annual_usage_kwh is None or annual_usage_kwh <= 0:
        raise ValidationError("Annual usage must be greater than zero", field="annual_kwh")
    if solar_production_kwh is None or solar_production_kwh < 0:
        raise ValidationError("Solar production cannot be negative", field="solar_production")
    if not getattr(plan, "time_windowed", False):
        raise ValidationError("Peak shaving needs a time-of-use style plan", field="rate_plan")

    rates = period_rates(plan)
    usage = split_usage(annual_usage_kwh, distribution or plan.period_distribution)
    unknown = set(usage) - set(rates)
    if unknown:
        raise ValidationError("Distribution has periods the plan does not price: %s"
                              % ", ".join(sorted(unknown)), field="distribution")

    day_load = annual_usage_kwh * DAYTIME_USAGE_SHARE
    night_load = annual_usage_kwh - day_load
    solar_offsets = offset_priciest_first(usage, rates, min(solar_production_kwh, day_load))
    after_solar = {name: usage[name] - solar_offsets[name] for name in usage}
    surplus = max(0.0, solar_production_kwh - day_load)

    battery_offsets = dict.fromkeys(usage, 0.0)
    discharge = 0.0
    cycles = 0.0
    if battery:
        annual_capacity = battery.usable_kwh * BATTERY_MAX_CYCLES_PER_YEAR
        available = min(annual_capacity, surplus * battery.round_trip_efficiency, night_load)
        if ai_mode:
            battery_offsets = offset_by_priority(after_solar, available)
        else:
            battery_offsets = offset_pro_rata(after_solar, available)
        discharge = sum(battery_offsets.values())
        cycles = discharge / battery.usable_kwh

    grid = {name: after_solar[name] - battery_offsets[name] for name in usage}
    result = PeakShavingResult(
        usage_by_period=usage,
        solar_offset_by_period=solar_offsets,
        battery_offset_by_period=battery_offsets,
        grid_by_period=grid,
        rates=rates,
        baseline_cost=_cost(usage, rates),
        cost_after_solar=_cost(after_solar, rates),
        cost_after_battery=_cost(grid, rates),
        solar_surplus_kwh=surplus,
        battery_discharge_kwh=discharge,
        battery_cycles=cycles,
    )
    if net_cost is not None:
        result.payback_years = calculate_payback(net_cost, result.annual_savings)
    _LOGGER.debug("Peak shaving on %s: baseline $%.2f, after battery $%.2f",
                  plan.id, result.baseline_cost, result.cost_after_battery)
    return result

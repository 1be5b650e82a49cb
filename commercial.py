"""Commercial demand charge calculator.

Sizes a peak shaving battery from the demand to shave and how long the peak
lasts, and prices the demand charge savings. Independent of the residential
solar pipeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from constants import PAYBACK_CAP_YEARS
from errors import ValidationError
from utils import calculate_payback

_LOGGER = logging.getLogger(__name__)

C_RATE_RANGE = (0.1, 2.0)
EFFICIENCY_RANGE = (0.5, 1.0)
DOD_RANGE = (0.5, 1.0)

BILLING_METHODS = ["per_kw", "per_kva", "max_kw_kva"]
KVA_BILLING_FACTOR = 0.9

REBATE_PER_SOLAR_KW = 860
REBATE_CAP = 860000
REBATE_SOLAR_COST_SHARE = 0.5


def _check_range(value, bounds, name: str) -> float:
    low, high = bounds
    if value is None or not low <= value <= high:
        raise ValidationError("%s must be between %s and %s, got %r" % (name, low, high, value),
                              field=name)
    return float(value)


@dataclass(frozen=True)
class BatterySizing:
    energy_needed_kwh: float
    power_limited_kwh: float
    nameplate_kwh: float
    inverter_kw: float

    @property
    def sizing_type(self) -> str:
        if self.power_limited_kwh > self.energy_needed_kwh:
            return "power-dominated"
        return "energy-dominated"


def size_battery(shave_kw: float, duration_minutes: float, c_rate: float,
                 efficiency: float, depth_of_discharge: float) -> BatterySizing:
    """Battery needed to shave ``shave_kw`` for ``duration_minutes``.

    The nameplate is the larger of the energy requirement and the capacity
    needed to deliver ``shave_kw`` at ``c_rate``, grossed up for losses and
    depth of discharge. Out of range parameters are rejected.
    """
    c_rate = _check_range(c_rate, C_RATE_RANGE, "c_rate")
    efficiency = _check_range(efficiency, EFFICIENCY_RANGE, "efficiency")
    depth_of_discharge = _check_range(depth_of_discharge, DOD_RANGE, "depth_of_discharge")
    if shave_kw is None or shave_kw < 0:
        raise ValidationError("Shave demand cannot be negative", field="shave_kw")
    if duration_minutes is None or duration_minutes < 0:
        raise ValidationError("Peak duration cannot be negative", field="duration_minutes")

    energy = shave_kw * duration_minutes / 60
    power_limited = shave_kw / c_rate
    return BatterySizing(
        energy_needed_kwh=energy,
        power_limited_kwh=power_limited,
        nameplate_kwh=max(energy, power_limited) / (efficiency * depth_of_discharge),
        inverter_kw=shave_kw,
    )


def demand_charge_savings(shave_kw: float, demand_rate: float) -> float:
    """Monthly demand charge saved by shaving ``shave_kw``."""
    if demand_rate is None or demand_rate < 0:
        raise ValidationError("Demand charge rate cannot be negative", field="demand_rate")
    return shave_kw * demand_rate


def billed_demand(kw: float, kva: float, method: str) -> float:
    if method == "per_kva":
        return kva
    if method == "max_kw_kva":
        return max(kw, KVA_BILLING_FACTOR * kva)
    return kw


@dataclass(frozen=True)
class BillingState:
    kw: float
    kva: float
    billed_demand: float
    monthly_cost: float


def billing_states(peak: float, current_pf: float, target_pf: float, shave_kw: float,
                   demand_rate: float, method: str = "per_kw") -> dict:
    """Demand charges before, after power factor correction, and after shaving too.

    ``peak`` is in kW for ``per_kw`` billing and in kVA otherwise.
    """
    if method not in BILLING_METHODS:
        raise ValidationError("Billing method must be one of %s" % ", ".join(BILLING_METHODS),
                              field="billing_method")
    for name, pf in (("current_pf", current_pf), ("target_pf", target_pf)):
        if pf is None or not 0 < pf <= 1:
            raise ValidationError("Power factor must be in (0, 1]", field=name)

    if method == "per_kw":
        kw = peak
        kva = peak / current_pf
    else:
        kva = peak
        kw = peak * current_pf
    shaved_kw = max(kw - shave_kw, 0.0)

    states = {}
    for name, (state_kw, state_kva) in (("before", (kw, kva)),
                                        ("after_pf", (kw, kw / target_pf)),
                                        ("after_pf_shave", (shaved_kw, shaved_kw / target_pf))):
        demand = billed_demand(state_kw, state_kva, method)
        states[name] = BillingState(state_kw, state_kva, demand, demand * demand_rate)
    return states


def calculate_rebate(solar_ac_kw: float, solar_cost: float = None,
                     apply_solar_cost_cap: bool = False) -> dict:
    base = max(0.0, solar_ac_kw) * REBATE_PER_SOLAR_KW
    capped = min(base, REBATE_CAP)
    final = capped
    if apply_solar_cost_cap and solar_cost is not None:
        final = min(capped, REBATE_SOLAR_COST_SHARE * solar_cost)
    return {"base": base, "after_cap": capped, "final": final}


def multi_year_savings(annual_savings: float, years: int, escalator: float) -> list:
    rows = []
    cumulative = 0.0
    for year in range(1, years + 1):
        saving = annual_savings * (1 + escalator) ** (year - 1)
        cumulative += saving
        rows.append({"year": year, "annual_savings": saving, "cumulative": cumulative})
    return rows


@dataclass
class CommercialResult:
    sizing: BatterySizing
    monthly_savings: float
    annual_savings: float
    rebate: dict
    net_installed_cost: float
    payback_years: float
    roi_year1: float
    states: dict = field(default_factory=dict)
    projection: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "energy_needed_kwh": self.sizing.energy_needed_kwh,
            "power_limited_kwh": self.sizing.power_limited_kwh,
            "battery_kwh": self.sizing.nameplate_kwh,
            "inverter_kw": self.sizing.inverter_kw,
            "sizing_type": self.sizing.sizing_type,
            "monthly_savings": self.monthly_savings,
            "annual_savings": self.annual_savings,
            "rebate": dict(self.rebate),
            "net_installed_cost": self.net_installed_cost,
            "payback_years": self.payback_years,
            "roi_year1": self.roi_year1,
        }


def calculate_commercial(shave_kw: float, duration_minutes: float, c_rate: float,
                         efficiency: float, depth_of_discharge: float, demand_rate: float,
                         installed_cost: float = 0.0, solar_ac_kw: float = 0.0,
                         solar_cost: float = None, apply_solar_cost_cap: bool = False,
                         peak: float = None, current_pf: float = None, target_pf: float = None,
                         billing_method: str = "per_kw", analysis_years: int = 20,
                         escalator: float = 0.02) -> CommercialResult:
    """Battery size and demand charge economics for one site.

    Savings are ``shave_kw`` times the demand rate each month. When the
    metered ``peak`` and power factors are given, savings come from the
    billing states instead, so power factor correction counts too.
    """
    sizing = size_battery(shave_kw, duration_minutes, c_rate, efficiency, depth_of_discharge)

    states = {}
    if peak is not None:
        states = billing_states(peak, 1.0 if current_pf is None else current_pf,
                                1.0 if target_pf is None else target_pf, shave_kw,
                                demand_rate, billing_method)
        monthly = states["before"].monthly_cost - states["after_pf_shave"].monthly_cost
    else:
        monthly = demand_charge_savings(shave_kw, demand_rate)
    annual = monthly * 12

    rebate = calculate_rebate(solar_ac_kw, solar_cost, apply_solar_cost_cap)
    net_cost = installed_cost - rebate["final"]
    roi = annual / net_cost * 100 if net_cost > 0 else 0.0
    result = CommercialResult(
        sizing=sizing,
        monthly_savings=monthly,
        annual_savings=annual,
        rebate=rebate,
        net_installed_cost=net_cost,
        payback_years=calculate_payback(net_cost, annual, PAYBACK_CAP_YEARS),
        roi_year1=roi,
        states=states,
        projection=multi_year_savings(annual, analysis_years, escalator),
    )
    _LOGGER.debug("Commercial sizing: %.1f kWh (%s), savings $%.0f/yr",
                  sizing.nameplate_kwh, sizing.sizing_type, annual)
    return result

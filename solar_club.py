"""Provincial solar club settlement (Alberta style).

The program does not fit ordinary net metering: every import is billed at
the low rate, exports earn the high rate in the high production months and
the low rate otherwise, and imports earn a cash back percentage. Winter
production is reduced by a snow loss factor.
"""

from __future__ import annotations

import logging

from constants import SOLAR_CLUB
from net_metering import (
    BatteryState,
    PeriodResult,
    SimulationResult,
    aggregate_months,
    settle_months,
    sizing_warnings,
)
from usage import hourly_production, hourly_timeline

_LOGGER = logging.getLogger(__name__)


def apply_snow_loss(monthly_production, rules, snow_loss_factor: float) -> list:
    """Reduce production in the low (winter) months by ``snow_loss_factor``."""
    return [kwh if rules.is_high_month(month) else kwh * (1 - snow_loss_factor)
            for month, kwh in enumerate(monthly_production)]


def estimate_carbon_credits(production_kwh: float) -> float:
    return max(SOLAR_CLUB["carbon_credit_min"],
               min(SOLAR_CLUB["carbon_credit_max"],
                   production_kwh * SOLAR_CLUB["carbon_credit_per_kwh"]))


def seasonal_breakdown(months, rules) -> dict:
    seasons = {
        "high_production": {"months": [], "exported_kwh": 0.0, "export_credits": 0.0,
                            "imported_kwh": 0.0, "import_cost": 0.0},
        "low_production": {"months": [], "exported_kwh": 0.0, "export_credits": 0.0,
                           "imported_kwh": 0.0, "import_cost": 0.0},
    }
    for month in months:
        key = "high_production" if rules.is_high_month(month.month) else "low_production"
        season = seasons[key]
        season["months"].append(month.month + 1)
        season["exported_kwh"] += month.exported_kwh
        season["export_credits"] += month.export_credit
        season["imported_kwh"] += month.imported_kwh
        season["import_cost"] += month.import_cost
    return seasons


def simulate_solar_club(monthly_production, usage, program, battery=None,
                        ai_mode: bool = False, year: int = 2025) -> SimulationResult:
    """Hourly settlement under the provincial program.

    Args:
        monthly_production: 12 monthly kWh values before snow loss.
        usage: UsageProfile.
        program: rate_plans.ProvincialProgram carrying the region and rules.
        battery: Optional BatterySpec; it charges from solar only.
        ai_mode: Export instead of storing when the export credit beats the
            import rate the stored energy would displace.
        year: Calendar year to simulate.
    """
    rules = program.rules
    adjusted = apply_snow_loss(monthly_production, rules, program.snow_loss_factor)

    timeline = hourly_timeline(year)
    solar = hourly_production(adjusted, year)
    # The program has no tariff of its own, household load follows the TOU shape
    load = usage.hourly_kwh(year, "tou")
    state = BatteryState(battery) if battery else None

    periods = []
    for when, generation, consumption in zip(timeline, solar, load):
        month = when.month - 1
        export_rate = rules.export_rate(when)
        import_rate = rules.import_rate(when)
        direct = min(generation, consumption)
        surplus = generation - direct
        deficit = consumption - direct

        charge = discharge = 0.0
        soc_before = state.soc if state else 0.0
        if state:
            if not (ai_mode and export_rate > import_rate):
                charge = state.charge(surplus)
            discharge = state.discharge(deficit)

        imported = deficit - discharge
        exported = surplus - charge
        periods.append(PeriodResult(
            period=when,
            month=month,
            generation_kwh=generation,
            consumption_kwh=consumption,
            self_consumed_kwh=direct,
            exported_kwh=exported,
            imported_kwh=imported,
            battery_charge_kwh=charge,
            battery_discharge_kwh=discharge,
            soc_delta_kwh=(state.soc - soc_before) if state else 0.0,
            soc_kwh=state.soc if state else 0.0,
            import_cost=imported * import_rate,
            export_credit=exported * export_rate,
            baseline_cost=consumption * import_rate,
        ))

    months = aggregate_months(periods)
    cash_back_share = rules.cash_back_pct / 100
    for month in months:
        month.cash_back = month.import_cost * cash_back_share
    settle_months(months)

    annual_generation = sum(m.generation_kwh for m in months)
    result = SimulationResult(
        strategy="provincial",
        plan_id=rules.id,
        granularity="hourly",
        ai_mode=ai_mode,
        months=months,
        periods=periods,
        warnings=sizing_warnings(months, usage, year),
        program={
            "region": program.region_code,
            "snow_loss_factor": program.snow_loss_factor,
            "cash_back": sum(m.cash_back for m in months),
            "estimated_carbon_credits": estimate_carbon_credits(annual_generation),
            "seasons": seasonal_breakdown(months, rules),
        },
    )
    _LOGGER.debug("Solar club settlement for %s: export credit $%.2f, net bill $%.2f",
                  program.region_code, result.annual_export_credit, result.annual_net_bill)
    return result

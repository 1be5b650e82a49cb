"""Entry point for savings simulations.

``run_simulation`` checks the production and usage inputs, then hands off
to the generic net metering engine or to the provincial program settlement
depending on the pricing strategy it is given.
"""

from __future__ import annotations

import logging
import math

from equipment import BatterySpec
from errors import ValidationError
from net_metering import simulate_net_metering
from production import distribute_annual
from rate_plans import GenericPricing, ProvincialProgram, RatePlan, select_pricing_strategy
from solar_club import simulate_solar_club
from usage import UsageProfile
from utils import calculate_payback

_LOGGER = logging.getLogger(__name__)

DEFAULT_YEAR = 2025


def normalize_production(monthly_production=None, annual_production_kwh: float = None,
                         redistribute: bool = False) -> list:
    """Return 12 monthly production values.

    Args:
        monthly_production: 12 monthly kWh values.
        annual_production_kwh: Annual total, spread with the seasonal curve
            when no monthly values are given.
        redistribute: Accept a list of the wrong length by spreading its
            total over the seasonal curve instead of rejecting it.

    Raises:
        ValidationError: Values are missing, negative or not numbers, or the
            list does not have 12 entries and ``redistribute`` is off.
    """
    if monthly_production is None:
        if annual_production_kwh is None:
            raise ValidationError("Production is required", field="monthly_production")
        values = [annual_production_kwh]
        redistribute = True
    else:
        values = list(monthly_production)

    try:
        values = [float(v) for v in values]
    except (TypeError, ValueError) as err:
        raise ValidationError("Production values must be numeric",
                              field="monthly_production") from err
    if any(not math.isfinite(v) or v < 0 for v in values):
        raise ValidationError("Production values must be non-negative",
                              field="monthly_production")

    if len(values) == 12 and monthly_production is not None:
        return values
    if not redistribute:
        raise ValidationError("Monthly production must have 12 values, got %d" % len(values),
                              field="monthly_production")
    if monthly_production is not None:
        _LOGGER.warning("Redistributing %d production values over 12 months", len(values))
    return distribute_annual(sum(values))


def as_usage_profile(usage) -> UsageProfile:
    """Accept a UsageProfile or a bare annual kWh figure."""
    if isinstance(usage, UsageProfile):
        return usage
    return UsageProfile(annual_kwh=usage)


def run_simulation(monthly_production, usage, pricing=None, battery: BatterySpec = None,
                   ai_mode: bool = False, year: int = DEFAULT_YEAR,
                   granularity: str = None, net_system_cost: float = None,
                   ai_tie_break: str = "earliest", redistribute: bool = False,
                   annual_production_kwh: float = None):
    """Simulate a year of solar, load and battery against a pricing strategy.

    Args:
        monthly_production: 12 monthly kWh values (see ``normalize_production``).
        usage: UsageProfile or annual kWh.
        pricing: GenericPricing, ProvincialProgram, a RatePlan, or None for
            the default plan.
        battery: Optional BatterySpec.
        ai_mode: Price-aware battery dispatch.
        year: Calendar year used for weekdays, holidays and month lengths.
        granularity: "hourly" or "monthly"; chosen automatically when None.
        net_system_cost: Installed cost after incentives, for the payback.
        ai_tie_break: "earliest" or "reserve" when later hours share today's
            top price.
        redistribute: Spread wrong-length production over 12 months.
        annual_production_kwh: Used when ``monthly_production`` is None.

    Returns:
        net_metering.SimulationResult
    """
    production = normalize_production(monthly_production, annual_production_kwh, redistribute)
    profile = as_usage_profile(usage)

    if pricing is None:
        pricing = select_pricing_strategy()
    elif isinstance(pricing, RatePlan):
        pricing = GenericPricing(plan=pricing)

    if isinstance(pricing, ProvincialProgram):
        result = simulate_solar_club(production, profile, pricing, battery, ai_mode, year)
    elif isinstance(pricing, GenericPricing):
        result = simulate_net_metering(production, profile, pricing.plan, battery, ai_mode,
                                       year, granularity, ai_tie_break)
    else:
        raise ValidationError("Unsupported pricing strategy %r" % (pricing,), field="rate_plan")

    if net_system_cost is not None:
        result.net_system_cost = net_system_cost
        result.payback_years = calculate_payback(net_system_cost, result.annual_savings)
    return result

"""Net metering simulation.

Steps solar production and household load through the year against a rate
plan, at hourly or monthly granularity, with an optional battery. Export
credits roll over from month to month, oldest first, and expire after a
year.

Energy bookkeeping per period, without a battery:

    self_consumed = min(generation, consumption)
    imported      = consumption - self_consumed
    exported      = generation - self_consumed

With a battery, solar surplus charges it before being exported and it
discharges into any deficit before power is imported.
"""

from __future__ import annotations

import calendar
import logging
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from constants import (
    CREDIT_EXPIRY_MONTHS,
    HOURLY_PRODUCTION_SHAPE,
    HOURLY_USAGE_SHAPE,
    INTERVAL_COVERAGE_WARNING_RATIO,
    LOW_SOLAR_WARNING_RATIO,
    MONTH_NAMES,
)
from errors import ValidationError
from usage import hourly_production, hourly_timeline, normalize_weights

_LOGGER = logging.getLogger(__name__)

GRANULARITIES = ["hourly", "monthly"]
AI_TIE_BREAKS = ["earliest", "reserve"]

# Prices closer than this are treated as equal ($/kWh)
PRICE_EPSILON = 1e-9


@dataclass
class PeriodResult:
    """Energy and money for one simulated period."""

    period: object  # datetime for hourly periods, month index for monthly ones
    month: int
    generation_kwh: float = 0.0
    consumption_kwh: float = 0.0
    self_consumed_kwh: float = 0.0
    exported_kwh: float = 0.0
    imported_kwh: float = 0.0
    battery_charge_kwh: float = 0.0
    battery_discharge_kwh: float = 0.0
    soc_delta_kwh: float = 0.0
    soc_kwh: float = 0.0
    import_cost: float = 0.0
    export_credit: float = 0.0
    baseline_cost: float = 0.0


ENERGY_FIELDS = ["generation_kwh", "consumption_kwh", "self_consumed_kwh", "exported_kwh",
                 "imported_kwh", "battery_charge_kwh", "battery_discharge_kwh", "soc_delta_kwh",
                 "import_cost", "export_credit", "baseline_cost"]


@dataclass
class MonthlyResult:
    month: int
    generation_kwh: float = 0.0
    consumption_kwh: float = 0.0
    self_consumed_kwh: float = 0.0
    exported_kwh: float = 0.0
    imported_kwh: float = 0.0
    battery_charge_kwh: float = 0.0
    battery_discharge_kwh: float = 0.0
    soc_delta_kwh: float = 0.0
    import_cost: float = 0.0
    export_credit: float = 0.0
    baseline_cost: float = 0.0
    cash_back: float = 0.0
    credits_applied: float = 0.0
    credits_expired: float = 0.0
    credit_balance: float = 0.0
    net_bill: float = 0.0
    tier1_kwh: float = 0.0
    tier2_kwh: float = 0.0

    @property
    def name(self) -> str:
        return MONTH_NAMES[self.month]

    @property
    def savings(self) -> float:
        return self.baseline_cost - self.net_bill

    def add(self, period: PeriodResult) -> None:
        for name in ENERGY_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(period, name))


@dataclass
class SimulationResult:
    strategy: str  # generic | provincial
    plan_id: str
    granularity: str
    ai_mode: bool
    months: list
    periods: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    net_system_cost: float = None
    payback_years: float = None
    program: dict = None

    def _total(self, name: str) -> float:
        return sum(getattr(m, name) for m in self.months)

    @property
    def annual_generation_kwh(self) -> float:
        return self._total("generation_kwh")

    @property
    def annual_consumption_kwh(self) -> float:
        return self._total("consumption_kwh")

    @property
    def annual_self_consumed_kwh(self) -> float:
        return self._total("self_consumed_kwh")

    @property
    def annual_exported_kwh(self) -> float:
        return self._total("exported_kwh")

    @property
    def annual_imported_kwh(self) -> float:
        return self._total("imported_kwh")

    @property
    def battery_throughput_kwh(self) -> float:
        return self._total("battery_discharge_kwh")

    @property
    def annual_import_cost(self) -> float:
        return self._total("import_cost")

    @property
    def annual_export_credit(self) -> float:
        return self._total("export_credit")

    @property
    def baseline_annual_cost(self) -> float:
        return self._total("baseline_cost")

    @property
    def annual_net_bill(self) -> float:
        return self._total("net_bill")

    @property
    def annual_savings(self) -> float:
        return self.baseline_annual_cost - self.annual_net_bill

    @property
    def monthly_savings(self) -> list:
        return [m.savings for m in self.months]

    @property
    def credit_balance(self) -> float:
        return self.months[-1].credit_balance if self.months else 0.0

    @property
    def bill_offset_percent(self) -> float:
        """Share of the no-solar bill removed, 0-100."""
        baseline = self.baseline_annual_cost
        if baseline <= 0:
            return 0.0
        return max(0.0, min(100.0, self.annual_savings / baseline * 100))

    @property
    def energy_offset_percent(self) -> float:
        """Solar generation as a share of consumption."""
        consumption = self.annual_consumption_kwh
        if consumption <= 0:
            return 0.0
        return self.annual_generation_kwh / consumption * 100


class BatteryState:
    """State of charge of a battery, bounded by [0, usable capacity].

    Round-trip losses are taken when charging.
    """

    def __init__(self, battery):
        self.battery = battery
        self.soc = 0.0

    @property
    def room(self) -> float:
        return self.battery.usable_kwh - self.soc

    def charge(self, available_kwh: float, hours: float = 1.0) -> float:
        """Store surplus energy; returns the kWh drawn from ``available_kwh``."""
        if available_kwh <= 0 or self.room <= 0:
            return 0.0
        efficiency = self.battery.round_trip_efficiency
        drawn = min(available_kwh, self.room / efficiency, self.battery.inverter_kw * hours)
        self.soc = min(self.battery.usable_kwh, self.soc + drawn * efficiency)
        return drawn

    def discharge(self, needed_kwh: float, hours: float = 1.0, limit: float = None) -> float:
        """Supply up to ``needed_kwh``; returns the kWh delivered."""
        if needed_kwh <= 0 or self.soc <= 0:
            return 0.0
        delivered = min(needed_kwh, self.soc, self.battery.inverter_kw * hours)
        if limit is not None:
            delivered = min(delivered, max(0.0, limit))
        self.soc = max(0.0, self.soc - delivered)
        return delivered


def ai_discharge_limit(hour: int, rates: list, deficits: list, soc: float,
                       tie_break: str = "earliest"):
    """How much the battery may discharge at ``hour`` of a day in AI mode.

    Returns None for no limit (plain dispatch), 0.0 to hold the charge for a
    pricier window later in the day, or a kWh cap.

    Days with a single price have nothing to prefer and use plain dispatch.
    Otherwise the battery only discharges when no pricier hour remains
    today. When later hours share the current price, ``earliest`` spends
    freely now and ``reserve`` shares the charge across those hours in
    proportion to their expected deficits.
    """
    if max(rates) - min(rates) < PRICE_EPSILON:
        return None
    current = rates[hour]
    if max(rates[hour:]) - current > PRICE_EPSILON:
        return 0.0
    if tie_break != "reserve":
        return None
    tied = [h for h in range(hour, len(rates)) if abs(rates[h] - current) < PRICE_EPSILON]
    expected = sum(deficits[h] for h in tied)
    if expected <= 0:
        return None
    return soc * deficits[hour] / expected


def apply_credit_rollover(bills, credits, expiry_months: int = CREDIT_EXPIRY_MONTHS) -> list:
    """Offset monthly bills with export credits, oldest credit first.

    Args:
        bills: Charges per month before credits.
        credits: Export credit earned per month.
        expiry_months: Age at which unused credit lapses.

    Returns:
        One dict per month with credits_applied, credits_expired,
        credit_balance and net_bill.
    """
    queue = deque()
    settled = []
    for month, (bill, earned) in enumerate(zip(bills, credits)):
        expired = 0.0
        while queue and month - queue[0][0] >= expiry_months:
            expired += queue.popleft()[1]
        if earned > 0:
            queue.append([month, earned])

        applied = 0.0
        outstanding = max(0.0, bill)
        while queue and outstanding > 0:
            take = min(queue[0][1], outstanding)
            queue[0][1] -= take
            applied += take
            outstanding -= take
            if queue[0][1] <= 0:
                queue.popleft()

        settled.append({
            "credits_applied": applied,
            "credits_expired": expired,
            "credit_balance": sum(amount for _, amount in queue),
            "net_bill": bill - applied,
        })
    return settled


def settle_months(months, bills=None, expiry_months: int = CREDIT_EXPIRY_MONTHS) -> None:
    if bills is None:
        bills = [m.import_cost - m.cash_back for m in months]
    settled = apply_credit_rollover(bills, [m.export_credit for m in months], expiry_months)
    for month, settlement in zip(months, settled):
        for key, value in settlement.items():
            setattr(month, key, value)


def sizing_warnings(months, usage=None, year: int = 2025) -> list:
    generation = sum(m.generation_kwh for m in months)
    consumption = sum(m.consumption_kwh for m in months)
    warnings = []
    if consumption > 0 and generation < LOW_SOLAR_WARNING_RATIO * consumption:
        warnings.append("Solar production covers only %.0f%% of annual usage"
                        % (generation / consumption * 100))
    if usage is not None and usage.has_interval_data:
        coverage = usage.interval_coverage(year)
        if coverage < INTERVAL_COVERAGE_WARNING_RATIO:
            warnings.append("Interval data covers only %.0f%% of the year; missing hours "
                            "count as zero usage" % (coverage * 100))
    return warnings


def choose_granularity(plan, usage, granularity: str = None) -> str:
    if granularity is not None:
        if granularity not in GRANULARITIES:
            raise ValidationError("Granularity must be one of %s" % ", ".join(GRANULARITIES),
                                  field="granularity")
        return granularity
    if usage.has_interval_data or plan.time_windowed:
        return "hourly"
    return "monthly"


def simulate_hourly(monthly_production, usage, plan, battery=None, ai_mode: bool = False,
                    year: int = 2025, ai_tie_break: str = "earliest") -> list:
    """Hour-by-hour simulation; returns the list of PeriodResult."""
    timeline = hourly_timeline(year)
    solar = hourly_production(monthly_production, year)
    load = usage.hourly_kwh(year, plan.plan_type)
    state = BatteryState(battery) if battery else None

    imported_to_date = [0.0] * 12
    consumed_to_date = [0.0] * 12
    periods = []
    for day_start in range(0, len(timeline), 24):
        day = range(day_start, day_start + 24)
        rates = deficits = None
        if state and ai_mode:
            rates = [plan.import_rate(timeline[i]) for i in day]
            deficits = [max(0.0, load[i] - solar[i]) for i in day]

        for offset, i in enumerate(day):
            when = timeline[i]
            month = when.month - 1
            generation, consumption = solar[i], load[i]
            direct = min(generation, consumption)
            surplus = generation - direct
            deficit = consumption - direct

            charge = discharge = 0.0
            soc_before = state.soc if state else 0.0
            if state:
                charge = state.charge(surplus)
                limit = None
                if ai_mode:
                    limit = ai_discharge_limit(offset, rates, deficits, state.soc, ai_tie_break)
                discharge = state.discharge(deficit, limit=limit)

            imported = deficit - discharge
            exported = surplus - charge
            period = PeriodResult(
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
                import_cost=plan.price_at(when, imported, imported_to_date[month]),
                export_credit=exported * plan.export_rate(when),
                baseline_cost=plan.price_at(when, consumption, consumed_to_date[month]),
            )
            imported_to_date[month] += imported
            consumed_to_date[month] += consumption
            periods.append(period)
    return periods


def typical_day(generation: float, consumption: float, days: int,
                power_kw: float = None) -> tuple:
    """(direct use, surplus, deficit) in kWh for an average day of a month.

    Monthly totals are spread over the day with the hourly production and
    usage shapes, so a month can have daytime surplus and evening deficit
    at the same time. With ``power_kw`` each hour's surplus and deficit
    are capped at what an inverter of that rating moves in one hour.
    """
    solar = np.asarray(normalize_weights(HOURLY_PRODUCTION_SHAPE)) * (generation / days)
    load = np.asarray(normalize_weights(HOURLY_USAGE_SHAPE)) * (consumption / days)
    matched = np.minimum(solar, load)
    surplus = solar - matched
    deficit = load - matched
    if power_kw is not None:
        surplus = np.minimum(surplus, power_kw)
        deficit = np.minimum(deficit, power_kw)
    return float(matched.sum()), float(surplus.sum()), float(deficit.sum())


def simulate_monthly(monthly_production, usage, plan, battery=None, year: int = 2025) -> list:
    """Month-by-month simulation.

    Without a battery, self consumption is the smaller of the month's
    generation and consumption. A battery is modelled on a typical day of
    the month: it charges from that day's solar surplus, discharges into
    the same day's deficit, one cycle per day, no faster per hour than
    its inverter allows.
    """
    consumption_by_month = usage.monthly_kwh(year, plan.plan_type)
    periods = []
    for month in range(12):
        generation = monthly_production[month]
        consumption = consumption_by_month[month]
        direct = min(generation, consumption)
        surplus = generation - direct
        deficit = consumption - direct

        charge = discharge = 0.0
        if battery:
            days = calendar.monthrange(year, month + 1)[1]
            efficiency = battery.round_trip_efficiency
            day_direct, day_surplus, day_deficit = typical_day(generation, consumption, days,
                                                             battery.inverter_kw)
            day_charge = min(day_surplus, battery.usable_kwh / efficiency,
                             day_deficit / efficiency)
            direct = day_direct * days
            surplus = generation - direct
            deficit = consumption - direct
            charge = day_charge * days
            discharge = charge * efficiency

        imported = deficit - discharge
        exported = surplus - charge
        periods.append(PeriodResult(
            period=month,
            month=month,
            generation_kwh=generation,
            consumption_kwh=consumption,
            self_consumed_kwh=direct,
            exported_kwh=exported,
            imported_kwh=imported,
            battery_charge_kwh=charge,
            battery_discharge_kwh=discharge,
            import_cost=plan.price_at(month, imported),
            export_credit=exported * plan.monthly_export_rate(month),
            baseline_cost=plan.price_at(month, consumption),
        ))
    return periods


def aggregate_months(periods) -> list:
    months = [MonthlyResult(month=m) for m in range(12)]
    for period in periods:
        months[period.month].add(period)
    return months


def tier_breakdown(months, plan) -> None:
    """Fill tier 1 / tier 2 kWh for tiered plans."""
    if plan.plan_type != "tiered":
        return
    for month in months:
        month.tier1_kwh, month.tier2_kwh = plan.tier_split(month.imported_kwh)


def simulate_net_metering(monthly_production, usage, plan, battery=None,
                          ai_mode: bool = False, year: int = 2025,
                          granularity: str = None,
                          ai_tie_break: str = "earliest") -> SimulationResult:
    """Run the generic net metering simulation for one year."""
    if ai_tie_break not in AI_TIE_BREAKS:
        raise ValidationError("AI tie-break must be one of %s" % ", ".join(AI_TIE_BREAKS),
                              field="ai_tie_break")
    granularity = choose_granularity(plan, usage, granularity)

    if granularity == "hourly":
        periods = simulate_hourly(monthly_production, usage, plan, battery, ai_mode,
                                  year, ai_tie_break)
    else:
        if ai_mode and battery:
            _LOGGER.debug("AI mode has no price windows to use at monthly granularity")
        periods = simulate_monthly(monthly_production, usage, plan, battery, year)

    months = aggregate_months(periods)
    tier_breakdown(months, plan)
    settle_months(months)

    result = SimulationResult(
        strategy="generic",
        plan_id=plan.id,
        granularity=granularity,
        ai_mode=ai_mode,
        months=months,
        periods=periods,
        warnings=sizing_warnings(months, usage, year),
    )
    _LOGGER.debug("Net metering on %s (%s): import %.0f kWh, export %.0f kWh, savings $%.2f",
                  plan.id, granularity, result.annual_imported_kwh,
                  result.annual_exported_kwh, result.annual_savings)
    return result

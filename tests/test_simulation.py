import pytest

from errors import ValidationError
from production import distribute_annual
from rate_plans import FLAT_PLAN, TOU_PLAN, GenericPricing, select_pricing_strategy
from simulation import normalize_production, run_simulation
from usage import UsageProfile

PRODUCTION = distribute_annual(9600)


def test_twelve_values_pass_through():
    assert normalize_production([1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12]) == \
        [float(v) for v in range(1, 13)]


def test_wrong_length_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        normalize_production([100.0] * 11)
    assert excinfo.value.field == "monthly_production"


def test_wrong_length_can_be_redistributed():
    monthly = normalize_production([100.0] * 11, redistribute=True)
    assert len(monthly) == 12
    assert sum(monthly) == pytest.approx(1100.0)
    assert monthly[6] > monthly[0]


def test_annual_total_is_spread_seasonally():
    monthly = normalize_production(annual_production_kwh=6000)
    assert len(monthly) == 12
    assert sum(monthly) == pytest.approx(6000)


@pytest.mark.parametrize("values", [
    [100.0] * 11 + [-1.0],
    [100.0] * 11 + [float("nan")],
    [100.0] * 11 + ["lots"],
])
def test_bad_production_values(values):
    with pytest.raises(ValidationError):
        normalize_production(values)


def test_missing_production():
    with pytest.raises(ValidationError):
        normalize_production()


def test_default_pricing_is_time_of_use():
    result = run_simulation(PRODUCTION, 9000)
    assert result.strategy == "generic"
    assert result.plan_id == "tou"
    assert result.granularity == "hourly"


def test_bare_rate_plan_is_accepted():
    result = run_simulation(PRODUCTION, UsageProfile(annual_kwh=9000), FLAT_PLAN)
    assert result.plan_id == "flat"
    assert result.granularity == "monthly"


def test_granularity_can_be_forced():
    result = run_simulation(PRODUCTION, 9000, GenericPricing(plan=TOU_PLAN),
                            granularity="monthly")
    assert result.granularity == "monthly"
    assert len(result.periods) == 12


def test_provincial_region_dispatches_to_the_program():
    result = run_simulation(PRODUCTION, 9000, select_pricing_strategy("AB"))
    assert result.strategy == "provincial"
    assert result.program["region"] == "AB"


def test_unsupported_pricing_is_rejected():
    with pytest.raises(ValidationError):
        run_simulation(PRODUCTION, 9000, "tou")


def test_payback_from_net_system_cost():
    result = run_simulation(PRODUCTION, 9000, FLAT_PLAN, net_system_cost=10000)
    assert result.net_system_cost == 10000
    assert result.payback_years == pytest.approx(10000 / result.annual_savings)


def test_payback_is_capped():
    result = run_simulation(PRODUCTION, 9000, FLAT_PLAN, net_system_cost=1e7)
    assert result.payback_years == 25.0


def test_no_savings_reports_the_cap():
    result = run_simulation([0.0] * 12, 9000, FLAT_PLAN, net_system_cost=20000)
    assert result.annual_savings == pytest.approx(0)
    assert result.payback_years == 25.0


def test_payback_left_unset_without_cost():
    assert run_simulation(PRODUCTION, 9000, FLAT_PLAN).payback_years is None

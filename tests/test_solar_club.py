import pytest

import solar_club
from equipment import get_battery_spec
from production import distribute_annual
from rate_plans import SOLAR_CLUB_PLAN, ProvincialProgram, select_pricing_strategy
from usage import UsageProfile

PRODUCTION = distribute_annual(9600)


@pytest.fixture
def program():
    return select_pricing_strategy("AB")


def test_snow_loss_applies_to_low_months_only():
    adjusted = solar_club.apply_snow_loss([100.0] * 12, SOLAR_CLUB_PLAN, 0.03)
    assert adjusted[0] == pytest.approx(97.0)
    assert adjusted[11] == pytest.approx(97.0)
    assert adjusted[3] == pytest.approx(100.0)
    assert adjusted[8] == pytest.approx(100.0)


@pytest.mark.parametrize("production, credits", [
    (1000, 50),
    (10000, 100),
    (50000, 200),
])
def test_carbon_credit_estimate_is_clamped(production, credits):
    assert solar_club.estimate_carbon_credits(production) == pytest.approx(credits)


def test_settlement_uses_seasonal_export_rates(program):
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program)
    assert result.strategy == "provincial"
    assert result.plan_id == "solar_club"
    assert result.granularity == "hourly"

    june, january = result.months[5], result.months[0]
    assert june.export_credit == pytest.approx(june.exported_kwh * 0.33)
    assert january.export_credit == pytest.approx(january.exported_kwh * 0.0689)
    for month in result.months:
        assert month.import_cost == pytest.approx(month.imported_kwh * 0.0689)
        assert month.cash_back == pytest.approx(month.import_cost * 0.03)


def test_snow_loss_reduces_winter_generation(program):
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program)
    assert result.months[0].generation_kwh == pytest.approx(PRODUCTION[0] * 0.97)
    assert result.months[6].generation_kwh == pytest.approx(PRODUCTION[6])


def test_custom_snow_loss_factor():
    program = ProvincialProgram(region_code="AB", snow_loss_factor=0.10)
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program)
    assert result.months[1].generation_kwh == pytest.approx(PRODUCTION[1] * 0.9)
    assert result.program["snow_loss_factor"] == 0.10


def test_program_summary(program):
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program)
    summary = result.program
    assert summary["region"] == "AB"
    assert summary["cash_back"] == pytest.approx(sum(m.cash_back for m in result.months))
    assert summary["seasons"]["high_production"]["months"] == [4, 5, 6, 7, 8, 9]
    assert summary["seasons"]["low_production"]["months"] == [1, 2, 3, 10, 11, 12]
    assert summary["seasons"]["high_production"]["export_credits"] == pytest.approx(
        sum(result.months[m].export_credit for m in range(3, 9)))


def test_high_export_rate_makes_the_program_pay(program):
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program)
    assert result.annual_savings > 0
    assert 0 <= result.bill_offset_percent <= 100


def test_battery_charges_from_solar_only(program):
    battery = get_battery_spec("renon-16")
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program,
                                            battery=battery)
    for period in result.periods:
        assert period.battery_charge_kwh <= period.generation_kwh - period.self_consumed_kwh + 1e-9
        assert -1e-9 <= period.soc_kwh <= battery.usable_kwh + 1e-9


def test_ai_mode_exports_instead_of_storing_in_high_months(program):
    battery = get_battery_spec("renon-16")
    result = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program,
                                            battery=battery, ai_mode=True)
    for period in result.periods:
        if SOLAR_CLUB_PLAN.is_high_month(period.month):
            assert period.battery_charge_kwh == 0
    plain = solar_club.simulate_solar_club(PRODUCTION, UsageProfile(annual_kwh=9000), program,
                                           battery=battery)
    assert result.annual_export_credit > plain.annual_export_credit

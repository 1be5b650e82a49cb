import pytest

import peak_shaving
from equipment import get_battery_spec
from errors import ValidationError
from peak_shaving import calculate_peak_shaving
from rate_plans import FLAT_PLAN, TOU_PLAN, ULO_PLAN

TOU_BASELINE = 10000 * (19 * 0.203 + 18 * 0.157 + 63 * 0.098) / 100


def test_usage_split_by_plan_distribution():
    result = calculate_peak_shaving(10000, 0, TOU_PLAN)
    assert result.usage_by_period == pytest.approx(
        {"on_peak": 1900, "mid_peak": 1800, "off_peak": 6300})
    assert result.baseline_cost == pytest.approx(TOU_BASELINE)
    assert result.annual_savings == pytest.approx(0)


def test_solar_offsets_priciest_periods_first():
    result = calculate_peak_shaving(10000, 2000, TOU_PLAN)
    assert result.solar_offset_by_period == pytest.approx(
        {"on_peak": 1900, "mid_peak": 100, "off_peak": 0})
    assert result.solar_savings == pytest.approx(1900 * 0.203 + 100 * 0.157)


def test_solar_only_offsets_daytime_usage():
    result = calculate_peak_shaving(10000, 8000, TOU_PLAN)
    assert sum(result.solar_offset_by_period.values()) == pytest.approx(5000)
    assert result.solar_surplus_kwh == pytest.approx(3000)
    assert result.battery_discharge_kwh == 0


def test_battery_covers_what_solar_leaves():
    battery = get_battery_spec("renon-16")
    result = calculate_peak_shaving(10000, 6000, TOU_PLAN, battery=battery)
    assert result.solar_surplus_kwh == pytest.approx(1000)
    assert result.battery_discharge_kwh == pytest.approx(900)
    assert result.battery_offset_by_period["off_peak"] == pytest.approx(900)
    assert result.battery_savings == pytest.approx(900 * 0.098)
    assert result.battery_cycles == pytest.approx(900 / 14.4)


def test_battery_is_limited_by_yearly_cycles():
    battery = get_battery_spec("growatt-10")
    result = calculate_peak_shaving(40000, 60000, TOU_PLAN, battery=battery)
    assert result.battery_discharge_kwh == pytest.approx(9.0 * 365)


def test_ai_mode_discharges_by_priority():
    battery = get_battery_spec("renon-16")
    plain = calculate_peak_shaving(10000, 7000, ULO_PLAN, battery=battery)
    smart = calculate_peak_shaving(10000, 7000, ULO_PLAN, battery=battery, ai_mode=True)

    assert smart.battery_discharge_kwh == pytest.approx(plain.battery_discharge_kwh)
    assert smart.battery_offset_by_period["mid_peak"] == pytest.approx(100)
    assert smart.battery_offset_by_period["weekend_off_peak"] == pytest.approx(1700)
    assert smart.battery_offset_by_period["ultra_low"] == pytest.approx(0)
    assert smart.battery_savings > plain.battery_savings


def test_grid_never_goes_negative():
    battery = get_battery_spec("renon-32")
    result = calculate_peak_shaving(8000, 20000, ULO_PLAN, battery=battery, ai_mode=True)
    assert all(kwh >= -1e-9 for kwh in result.grid_by_period.values())
    assert 0 <= result.annual_savings <= result.baseline_cost


def test_custom_distribution():
    result = calculate_peak_shaving(1000, 0, TOU_PLAN,
                                    distribution={"on_peak": 50, "mid_peak": 25, "off_peak": 25})
    assert result.usage_by_period["on_peak"] == pytest.approx(500)


def test_payback_from_net_cost():
    result = calculate_peak_shaving(10000, 4000, TOU_PLAN, net_cost=5000)
    assert result.payback_years == pytest.approx(min(25.0, 5000 / result.annual_savings))


def test_to_dict_includes_savings():
    data = calculate_peak_shaving(10000, 4000, TOU_PLAN).to_dict()
    assert data["monthly_savings"] == pytest.approx(data["annual_savings"] / 12)


@pytest.mark.parametrize("kwargs", [
    {"annual_usage_kwh": 0, "solar_production_kwh": 100, "plan": TOU_PLAN},
    {"annual_usage_kwh": 1000, "solar_production_kwh": -1, "plan": TOU_PLAN},
    {"annual_usage_kwh": 1000, "solar_production_kwh": 100, "plan": FLAT_PLAN},
    {"annual_usage_kwh": 1000, "solar_production_kwh": 100, "plan": TOU_PLAN,
     "distribution": {"on_peak": 50, "shoulder": 50}},
])
def test_bad_inputs(kwargs):
    with pytest.raises(ValidationError):
        calculate_peak_shaving(**kwargs)


def test_offset_helpers():
    remaining = {"on_peak": 100.0, "mid_peak": 100.0, "off_peak": 200.0}
    assert peak_shaving.offset_by_priority(remaining, 150) == {
        "on_peak": 100.0, "mid_peak": 50.0, "off_peak": 0.0}
    assert peak_shaving.offset_pro_rata(remaining, 200) == pytest.approx(
        {"on_peak": 50.0, "mid_peak": 50.0, "off_peak": 100.0})

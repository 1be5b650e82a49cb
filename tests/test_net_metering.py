import pytest

import net_metering
from equipment import BatterySpec, get_battery_spec
from errors import ValidationError
from net_metering import ai_discharge_limit, apply_credit_rollover, simulate_net_metering
from production import distribute_annual
from rate_plans import FLAT_PLAN, TIERED_PLAN, TOU_PLAN, ULO_PLAN, is_off_peak_day, make_tiered_plan
from usage import UsageProfile

PRODUCTION = distribute_annual(9600)
NO_SOLAR = [0.0] * 12


@pytest.fixture
def battery():
    return get_battery_spec("renon-16")


def assert_balanced(period):
    assert period.generation_kwh == pytest.approx(
        period.self_consumed_kwh + period.battery_charge_kwh + period.exported_kwh, abs=1e-9)
    assert period.consumption_kwh == pytest.approx(
        period.self_consumed_kwh + period.battery_discharge_kwh + period.imported_kwh, abs=1e-9)
    assert period.exported_kwh >= -1e-12
    assert period.imported_kwh >= -1e-12


def test_hourly_energy_balances_without_battery():
    result = simulate_net_metering(PRODUCTION, UsageProfile(annual_kwh=9000), TOU_PLAN)
    assert result.granularity == "hourly"
    assert len(result.periods) == 8760
    for period in result.periods:
        assert_balanced(period)
        assert period.self_consumed_kwh == pytest.approx(
            min(period.generation_kwh, period.consumption_kwh))
    assert result.annual_generation_kwh == pytest.approx(9600)
    assert result.annual_consumption_kwh == pytest.approx(9000)


def test_hourly_battery_stays_within_capacity(battery):
    result = simulate_net_metering(PRODUCTION, UsageProfile(annual_kwh=9000), TOU_PLAN,
                                   battery=battery)
    for period in result.periods:
        assert_balanced(period)
        assert -1e-9 <= period.soc_kwh <= battery.usable_kwh + 1e-9
        assert period.battery_charge_kwh <= battery.inverter_kw + 1e-9
        assert period.battery_discharge_kwh <= battery.inverter_kw + 1e-9
    assert result.battery_throughput_kwh > 0


def test_battery_losses_are_taken_on_charge(battery):
    result = simulate_net_metering(PRODUCTION, UsageProfile(annual_kwh=9000), TOU_PLAN,
                                   battery=battery)
    charged = sum(p.battery_charge_kwh for p in result.periods)
    stored_change = sum(p.soc_delta_kwh for p in result.periods)
    assert result.battery_throughput_kwh + stored_change == pytest.approx(
        charged * battery.round_trip_efficiency)


def test_battery_reduces_imports(battery):
    profile = UsageProfile(annual_kwh=9000)
    without = simulate_net_metering(PRODUCTION, profile, TOU_PLAN)
    with_battery = simulate_net_metering(PRODUCTION, profile, TOU_PLAN, battery=battery)
    assert with_battery.annual_imported_kwh < without.annual_imported_kwh
    assert with_battery.annual_exported_kwh < without.annual_exported_kwh


def test_tiered_bill_without_solar():
    for plan in (TIERED_PLAN, make_tiered_plan(0.103, 0.125, 600)):
        result = simulate_net_metering(NO_SOLAR, UsageProfile(annual_kwh=7200), plan)
        assert result.granularity == "monthly"
        for month in result.months:
            assert month.consumption_kwh == pytest.approx(600)
            assert month.import_cost == pytest.approx(61.8)
            assert month.net_bill == pytest.approx(61.8)
            assert month.tier1_kwh == pytest.approx(600)
            assert month.tier2_kwh == pytest.approx(0)
        assert result.annual_savings == pytest.approx(0)


def test_tiered_exports_earn_the_premium():
    result = simulate_net_metering([1000.0] * 12, UsageProfile(annual_kwh=7200), TIERED_PLAN)
    january = result.months[0]
    assert january.exported_kwh == pytest.approx(400)
    assert january.export_credit == pytest.approx(400 * 0.123)


def test_monthly_battery_follows_daily_cycles(battery):
    result = simulate_net_metering([2000.0] * 12, UsageProfile(annual_kwh=12000), FLAT_PLAN,
                                   battery=battery, granularity="monthly")
    january = result.months[0]
    assert january.battery_discharge_kwh > 0
    assert january.battery_discharge_kwh <= battery.usable_kwh * 31 + 1e-9
    assert january.battery_discharge_kwh == pytest.approx(
        january.battery_charge_kwh * battery.round_trip_efficiency)
    for period in result.periods:
        assert_balanced(period)


def test_monthly_battery_is_limited_by_its_inverter(battery):
    slow = BatterySpec(id="slow", nominal_kwh=16, usable_kwh=14.4,
                       round_trip_efficiency=0.9, inverter_kw=1.0)
    profile = UsageProfile(annual_kwh=12000)
    limited = simulate_net_metering([1500.0] * 12, profile, FLAT_PLAN, battery=slow,
                                    granularity="monthly").months[0]
    full = simulate_net_metering([1500.0] * 12, profile, FLAT_PLAN, battery=battery,
                                 granularity="monthly").months[0]
    # 13 daylight hours at 1 kW
    assert limited.battery_discharge_kwh / 31 <= 13 * 1.0 * 0.9 + 1e-9
    assert limited.battery_discharge_kwh < full.battery_discharge_kwh
    assert_balanced(limited)


def test_monthly_without_battery_uses_month_totals():
    result = simulate_net_metering([500.0] * 12, UsageProfile(annual_kwh=12000), FLAT_PLAN,
                                   granularity="monthly")
    for period in result.periods:
        assert period.self_consumed_kwh == pytest.approx(
            min(period.generation_kwh, period.consumption_kwh))
        assert_balanced(period)


def test_interval_data_forces_hourly_pricing():
    readings = [("2025-01-%02dT18:00:00" % day, 2.0) for day in range(1, 29)]
    result = simulate_net_metering(NO_SOLAR, UsageProfile(interval_data=readings), FLAT_PLAN)
    assert result.granularity == "hourly"
    assert result.months[0].consumption_kwh == pytest.approx(56.0)
    assert result.months[0].import_cost == pytest.approx(56.0 * 0.134)


def test_savings_are_baseline_minus_net_bill():
    result = simulate_net_metering(PRODUCTION, UsageProfile(annual_kwh=9000), TOU_PLAN)
    for month in result.months:
        assert month.savings == pytest.approx(month.baseline_cost - month.net_bill)
    assert result.annual_savings == pytest.approx(
        result.baseline_annual_cost - result.annual_net_bill)
    assert 0 <= result.bill_offset_percent <= 100


def test_oversized_system_offsets_the_whole_bill():
    result = simulate_net_metering([5000.0] * 12, UsageProfile(annual_kwh=6000), FLAT_PLAN)
    assert result.bill_offset_percent == pytest.approx(100)
    assert result.annual_net_bill == pytest.approx(0)
    assert result.credit_balance > 0
    assert result.energy_offset_percent == pytest.approx(1000)


def test_undersized_system_warns():
    result = simulate_net_metering([100.0] * 12, UsageProfile(annual_kwh=9000), FLAT_PLAN)
    assert result.warnings
    assert "13%" in result.warnings[0]


def test_credits_roll_over_oldest_first():
    settled = apply_credit_rollover([0, 0, 15], [10, 20, 0])
    assert settled[0]["credit_balance"] == 10
    assert settled[1]["credit_balance"] == 30
    assert settled[2]["credits_applied"] == 15
    assert settled[2]["net_bill"] == 0
    assert settled[2]["credit_balance"] == 15


def test_credits_expire_after_twelve_months():
    bills = [0] * 12 + [50]
    credits = [100] + [0] * 12
    settled = apply_credit_rollover(bills, credits)
    assert settled[11]["credit_balance"] == 100
    assert settled[12]["credits_expired"] == 100
    assert settled[12]["credits_applied"] == 0
    assert settled[12]["net_bill"] == 50


def test_newer_credits_survive_older_expiry():
    bills = [0] * 12 + [30]
    credits = [100, 40] + [0] * 11
    settled = apply_credit_rollover(bills, credits)
    assert settled[12]["credits_expired"] == 100
    assert settled[12]["credits_applied"] == 30
    assert settled[12]["credit_balance"] == 10


def test_credit_never_exceeds_the_bill():
    settled = apply_credit_rollover([20], [50])
    assert settled[0]["net_bill"] == 0
    assert settled[0]["credit_balance"] == 30


# Day with a five hour evening peak, like a ULO weekday
PEAK_DAY = [0.1] * 16 + [0.3] * 5 + [0.1] * 3
FLAT_DAY = [0.134] * 24
DEFICITS = [1.0] * 24


def test_ai_holds_charge_for_a_pricier_window():
    assert ai_discharge_limit(10, PEAK_DAY, DEFICITS, soc=10.0) == 0.0
    assert ai_discharge_limit(0, PEAK_DAY, DEFICITS, soc=10.0) == 0.0


def test_ai_spends_freely_in_the_top_window_by_default():
    assert ai_discharge_limit(16, PEAK_DAY, DEFICITS, soc=10.0) is None
    assert ai_discharge_limit(16, PEAK_DAY, DEFICITS, soc=10.0, tie_break="earliest") is None


def test_ai_reserve_shares_charge_across_tied_hours():
    assert ai_discharge_limit(16, PEAK_DAY, DEFICITS, soc=10.0, tie_break="reserve") == \
        pytest.approx(2.0)
    assert ai_discharge_limit(19, PEAK_DAY, DEFICITS, soc=4.0, tie_break="reserve") == \
        pytest.approx(2.0)


def test_ai_reserve_weights_by_expected_deficit():
    deficits = [0.0] * 16 + [3.0, 1.0, 0.0, 0.0, 0.0] + [0.0] * 3
    limit = ai_discharge_limit(16, PEAK_DAY, deficits, soc=8.0, tie_break="reserve")
    assert limit == pytest.approx(6.0)


def test_ai_does_nothing_special_on_single_price_days():
    assert ai_discharge_limit(3, FLAT_DAY, DEFICITS, soc=10.0, tie_break="reserve") is None


def test_ai_after_the_peak_is_unlimited():
    assert ai_discharge_limit(22, PEAK_DAY, DEFICITS, soc=10.0) is None


def test_ai_mode_only_discharges_from_the_evening_peak_on_ulo_weekdays(battery):
    result = simulate_net_metering(PRODUCTION, UsageProfile(annual_kwh=9000), ULO_PLAN,
                                   battery=battery, ai_mode=True)
    weekday_morning = [p for p in result.periods
                       if not is_off_peak_day(p.period.date()) and p.period.hour < 16]
    assert weekday_morning
    assert all(p.battery_discharge_kwh == 0 for p in weekday_morning)
    assert result.battery_throughput_kwh > 0


def test_ai_mode_moves_discharge_into_the_on_peak_window(battery):
    def on_peak_share(result):
        on_peak = sum(p.battery_discharge_kwh for p in result.periods
                      if ULO_PLAN.window_name(p.period) == "on_peak")
        return on_peak / result.battery_throughput_kwh

    profile = UsageProfile(annual_kwh=9000)
    plain = simulate_net_metering(PRODUCTION, profile, ULO_PLAN, battery=battery)
    smart = simulate_net_metering(PRODUCTION, profile, ULO_PLAN, battery=battery, ai_mode=True)
    assert on_peak_share(smart) > on_peak_share(plain)


def test_bad_granularity_and_tie_break():
    profile = UsageProfile(annual_kwh=9000)
    with pytest.raises(ValidationError):
        simulate_net_metering(PRODUCTION, profile, FLAT_PLAN, granularity="daily")
    with pytest.raises(ValidationError):
        simulate_net_metering(PRODUCTION, profile, FLAT_PLAN, ai_tie_break="latest")


def test_battery_state_limits():
    state = net_metering.BatteryState(get_battery_spec("renon-16"))
    assert state.discharge(5.0) == 0.0
    drawn = state.charge(100.0)
    assert drawn == pytest.approx(5.0)
    assert state.soc == pytest.approx(4.5)
    assert state.discharge(10.0, limit=1.0) == pytest.approx(1.0)
    assert state.soc == pytest.approx(3.5)


def test_sparse_interval_data_warns():
    readings = [("2025-01-%02dT18:00:00" % day, 2.0) for day in range(1, 29)]
    result = simulate_net_metering(NO_SOLAR, UsageProfile(interval_data=readings), FLAT_PLAN)
    assert any("Interval data covers only 0%" in w for w in result.warnings)

import pytest

from utils import calculate_loan_payment, calculate_multi_year_projection, calculate_payback


def test_payback_is_capped():
    assert calculate_payback(30000, 1) == 25.0
    assert calculate_payback(30000, 0) == 25.0
    assert calculate_payback(30000, -100) == 25.0


def test_payback_simple_division():
    assert calculate_payback(20000, 2500) == pytest.approx(8.0)


def test_free_system_pays_back_immediately():
    assert calculate_payback(0, 500) == 0.0
    assert calculate_payback(-100, 500) == 0.0


def test_loan_payment():
    assert calculate_loan_payment(10000, 0, 10) == pytest.approx(1000)
    assert calculate_loan_payment(10000, 5, 10) == pytest.approx(1295.05, abs=0.01)


def test_projection_interpolates_payback():
    projection = calculate_multi_year_projection(10000, 4000, escalation_pct=0, years=5)
    assert projection["annual_savings"] == [4000] * 5
    assert projection["cumulative_cashflow"][0] == pytest.approx(-6000)
    assert projection["payback_years"] == pytest.approx(2.5)
    assert projection["total_savings"] == pytest.approx(20000)
    assert projection["roi_percent"] == pytest.approx(100)


def test_projection_escalates_savings():
    projection = calculate_multi_year_projection(10000, 1000, escalation_pct=10, years=3)
    assert projection["annual_savings"] == pytest.approx([1000, 1100, 1210])


def test_projection_never_paying_back_reports_the_cap():
    projection = calculate_multi_year_projection(1e6, 100, years=25)
    assert projection["payback_years"] == 25.0


def test_financed_projection():
    projection = calculate_multi_year_projection(10000, 2000, escalation_pct=0, years=10,
                                                 finance_mode=True, loan_term=5, loan_rate=0,
                                                 deposit_pct=20)
    assert projection["deposit_amount"] == pytest.approx(2000)
    assert projection["loan_amount"] == pytest.approx(8000)
    assert projection["annual_loan_payment"] == pytest.approx(1600)
    assert projection["cumulative_cashflow"][0] == pytest.approx(-1600)
    assert projection["loan_term"] == 5

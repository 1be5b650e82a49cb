"""Financial helpers shared by the savings calculators."""

from constants import PAYBACK_CAP_YEARS, PROJECTION_YEARS, RATE_ESCALATION_PCT


def calculate_payback(net_cost: float, annual_savings: float,
                      cap: float = PAYBACK_CAP_YEARS) -> float:
    """Simple payback in years, never more than ``cap``.

    No savings (or negative savings) reports the cap; a system that costs
    nothing pays back immediately.
    """
    if net_cost <= 0:
        return 0.0
    if annual_savings <= 0:
        return cap
    return min(cap, net_cost / annual_savings)


def calculate_loan_payment(principal: float, annual_rate: float, term_years: int) -> float:
    """Calculate annual loan payment using amortization formula."""
    if annual_rate == 0:
        return principal / term_years if term_years > 0 else 0
    r = annual_rate / 100
    return principal * (r * (1 + r) ** term_years) / ((1 + r) ** term_years - 1)


def calculate_multi_year_projection(
    net_cost: float,
    annual_savings: float,
    escalation_pct: float = RATE_ESCALATION_PCT,
    years: int = PROJECTION_YEARS,
    finance_mode: bool = False,
    loan_term: int = 10,
    loan_rate: float = 5.0,
    deposit_pct: float = 0
) -> dict:
    """Project savings and cashflow with escalating electricity prices.

    Args:
        net_cost: Installed cost after incentives
        annual_savings: Year 1 savings
        escalation_pct: Yearly electricity price increase (%)
        years: Projection length
        finance_mode: If True, spread the cost over a loan with interest
        loan_term: Number of years for loan repayment
        loan_rate: Annual interest rate for loan (%)
        deposit_pct: Deposit percentage (0-100) paid upfront when financing

    Returns:
        Dict with yearly savings, cumulative cashflow, interpolated payback
        (capped), total savings and ROI.
    """
    deposit_amount = net_cost * (deposit_pct / 100) if finance_mode else 0
    loan_amount = net_cost - deposit_amount if finance_mode else 0

    annual_loan_payment = 0
    total_interest = 0
    if finance_mode and loan_amount > 0:
        annual_loan_payment = calculate_loan_payment(loan_amount, loan_rate, loan_term)
        total_interest = (annual_loan_payment * loan_term) - loan_amount

    yearly_savings = []
    cumulative_cashflow = []
    cum_cf = -deposit_amount if finance_mode else -net_cost
    payback = None

    for t in range(1, years + 1):
        saving_t = annual_savings * ((1 + escalation_pct / 100) ** (t - 1))
        yearly_savings.append(saving_t)

        if finance_mode and t <= loan_term:
            net_benefit_t = saving_t - annual_loan_payment
        else:
            net_benefit_t = saving_t

        previous = cum_cf
        cum_cf += net_benefit_t
        cumulative_cashflow.append(cum_cf)

        # Interpolate within the year the cashflow turns positive
        if payback is None and previous < 0 <= cum_cf and net_benefit_t > 0:
            payback = (t - 1) + (-previous / net_benefit_t)

    if net_cost <= 0:
        payback = 0.0
    if payback is None:
        payback = PAYBACK_CAP_YEARS

    total_savings = sum(yearly_savings)
    total_paid = net_cost + total_interest
    roi = (total_savings - total_paid) / total_paid * 100 if total_paid > 0 else 0.0

    return {
        "annual_savings": yearly_savings,
        "cumulative_cashflow": cumulative_cashflow,
        "payback_years": min(payback, PAYBACK_CAP_YEARS),
        "total_savings": total_savings,
        "net_profit": total_savings - total_paid,
        "roi_percent": roi,
        "annual_loan_payment": annual_loan_payment,
        "total_interest": total_interest,
        "loan_term": loan_term if finance_mode else 0,
        "deposit_amount": deposit_amount,
        "loan_amount": loan_amount
    }

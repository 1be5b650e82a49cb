import pytest

from errors import ValidationError
from estimator import estimate
from quotation import create_cashflow_chart, generate_estimate_pdf


@pytest.fixture
def response():
    return estimate({"lat": 43.65, "lng": -79.38, "roof_preset": "medium", "annual_kwh": 9000,
                     "battery": "renon-16"})


def test_pdf_is_rendered(response):
    pdf = generate_estimate_pdf(response, customer_name="A. Client", quote_ref="E-TEST")
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_program_estimates_render_too():
    response = estimate({"lat": 51.05, "lng": -114.07, "region": "AB", "roof_preset": "small",
                         "annual_kwh": 8000})
    assert generate_estimate_pdf(response).startswith(b"%PDF")


def test_incomplete_estimates_are_refused(response):
    with pytest.raises(ValidationError):
        generate_estimate_pdf({"status": "roof_too_small", "roof": response["roof"]})


def test_cashflow_chart_marks_payback():
    drawing = create_cashflow_chart([-1000, -500, 0, 500], 2.0)
    assert drawing.width > 0
    assert drawing.contents

import pytest
import requests

import production
from production import estimate_production

PVWATTS_MONTHLY = [310.0, 420.0, 610.0, 700.0, 820.0, 840.0,
                   860.0, 790.0, 640.0, 470.0, 300.0, 250.0]


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError("%d error" % self.status_code)

    def json(self):
        return self.payload


@pytest.fixture
def pvwatts(monkeypatch):
    """Route PVWatts calls to a canned payload and record the requests."""
    calls = []
    state = {"payload": {"errors": [], "outputs": {
        "ac_monthly": PVWATTS_MONTHLY,
        "ac_annual": sum(PVWATTS_MONTHLY),
        "capacity_factor": 14.2,
        "solrad_annual": 4.1,
    }}, "status": 200}

    def fake_get(url, params=None, timeout=None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        return FakeResponse(state["payload"], state["status"])

    monkeypatch.setattr(production.requests, "get", fake_get)
    monkeypatch.setenv("NREL_API_KEY", "test-key")
    state["calls"] = calls
    return state


def test_fallback_without_api_key():
    estimate = estimate_production(5.0, 43.65, -79.38)
    assert estimate.source == "fallback"
    assert estimate.annual_kwh == 6000
    assert len(estimate.monthly_kwh) == 12
    assert abs(sum(estimate.monthly_kwh) - estimate.annual_kwh) <= 6
    assert estimate.capacity_factor == pytest.approx(6000 / (5 * 8760))


def test_fallback_is_summer_heavy():
    monthly = estimate_production(8.0, 43.65, -79.38).monthly_kwh
    assert monthly[6] > monthly[0]
    assert monthly.index(max(monthly)) == 6


def test_fallback_applies_shading():
    assert estimate_production(5.0, 43.65, -79.38, shading="moderate").annual_kwh == 4500


def test_pvwatts_result_is_used(pvwatts):
    estimate = estimate_production(8.0, 43.65, -79.38, region="ON", azimuth=180)
    assert estimate.source == "pvwatts"
    assert estimate.annual_kwh == round(sum(PVWATTS_MONTHLY))
    assert estimate.monthly_kwh == [round(v) for v in PVWATTS_MONTHLY]
    assert estimate.capacity_factor == pytest.approx(0.142)
    assert estimate.solrad_annual == 4.1


def test_pvwatts_request_parameters(pvwatts):
    estimate_production(8.0, 43.65, -79.38, roof_pitch="steep", region="ON", azimuth=175)
    call = pvwatts["calls"][0]
    params = call["params"]
    assert call["url"] == production.PVWATTS_URL
    assert call["timeout"] == production.PVWATTS_TIMEOUT_SECONDS
    assert params["api_key"] == "test-key"
    assert params["tilt"] == 45.0
    assert params["azimuth"] == 175
    assert params["albedo"] == 0.35
    assert params["soiling"].split("|")[0] == "12"
    assert params["module_type"] == 1


def test_timeout_from_environment(pvwatts, monkeypatch):
    monkeypatch.setenv("PVWATTS_TIMEOUT", "3.5")
    estimate_production(8.0, 43.65, -79.38)
    assert pvwatts["calls"][0]["timeout"] == 3.5


def test_shading_and_bifacial_scale_pvwatts_output(pvwatts):
    base = estimate_production(8.0, 43.65, -79.38)
    adjusted = estimate_production(8.0, 43.65, -79.38, shading="light", bifacial=True)
    assert adjusted.annual_kwh == round(sum(PVWATTS_MONTHLY) * 0.9 * 1.04)
    assert adjusted.annual_kwh < base.annual_kwh


def test_transport_error_falls_back(monkeypatch):
    def broken_get(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(production.requests, "get", broken_get)
    monkeypatch.setenv("NREL_API_KEY", "test-key")
    assert estimate_production(5.0, 43.65, -79.38).source == "fallback"


@pytest.mark.parametrize("payload, status", [
    ({"errors": ["api_key is invalid"]}, 200),
    ({"outputs": {"ac_monthly": [1.0] * 11}}, 200),
    ({"outputs": {"ac_monthly": [1.0] * 11 + [-5.0]}}, 200),
    ({"outputs": {}}, 500),
])
def test_unusable_responses_fall_back(pvwatts, payload, status):
    pvwatts["payload"] = payload
    pvwatts["status"] = status
    estimate = estimate_production(5.0, 43.65, -79.38)
    assert estimate.source == "fallback"
    assert estimate.annual_kwh == 6000


def test_invalid_parameters_skip_the_request(pvwatts):
    estimate = estimate_production(5.0, 123.0, -79.38)
    assert estimate.source == "fallback"
    assert pvwatts["calls"] == []


def test_unusable_system_size_reports_zero():
    estimate = estimate_production("lots", 43.65, -79.38)
    assert estimate.annual_kwh == 0
    assert estimate.monthly_kwh == [0] * 12


def test_roof_pitch_to_degrees():
    assert production.roof_pitch_to_degrees("flat") == 5.0
    assert production.roof_pitch_to_degrees(22) == 22.0
    assert production.roof_pitch_to_degrees("unknown") == 30.0


def test_distribute_annual_keeps_the_total():
    monthly = production.distribute_annual(1234.5)
    assert len(monthly) == 12
    assert sum(monthly) == pytest.approx(1234.5)


def test_production_range():
    assert production.production_range(10000) == (11000, 11900)
    assert production.production_range(0) == (0, 0)

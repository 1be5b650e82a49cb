"""Solar production estimates.

The primary source is the NREL PVWatts v8 API. Whenever it is unavailable,
unconfigured or returns something unusable, a deterministic estimate based
on a regional yield constant and a seasonal curve is used instead, so
callers always get a result.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass

import numpy as np
import requests

from constants import (
    ALBEDO_CANADA,
    ALBEDO_DEFAULT,
    BIFACIAL_GAIN,
    CANADIAN_PROVINCES,
    DEFAULT_TILT_DEGREES,
    HOURS_PER_YEAR,
    PRODUCTION_RANGE_MAX_MULTIPLIER,
    PRODUCTION_RANGE_MIN_MULTIPLIER,
    PRODUCTION_SEASONAL_WEIGHTS,
    PVWATTS_PARAMS,
    PVWATTS_TIMEOUT_SECONDS,
    PVWATTS_URL,
    REGIONAL_YIELD_KWH_PER_KW,
    ROOF_PITCH_DEGREES,
    SHADING_FACTORS,
    SOILING_CANADA,
    SOILING_DEFAULT,
)
from errors import ProductionServiceError

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductionEstimate:
    annual_kwh: int
    monthly_kwh: list
    capacity_factor: float
    source: str  # pvwatts | fallback
    solrad_annual: float = None

    def to_dict(self) -> dict:
        return {
            "annual_production_kwh": self.annual_kwh,
            "monthly_production_kwh": list(self.monthly_kwh),
            "capacity_factor": self.capacity_factor,
            "source": self.source,
            "solrad_annual": self.solrad_annual,
        }


def seasonal_curve() -> np.ndarray:
    """Monthly production fractions, summing to 1.0."""
    weights = np.asarray(PRODUCTION_SEASONAL_WEIGHTS, dtype=float)
    return weights / weights.sum()


def shading_factor(shading: str) -> float:
    return SHADING_FACTORS.get((shading or "none").lower(), 1.0)


def roof_pitch_to_degrees(pitch) -> float:
    """Tilt for a pitch class name, or a numeric pitch passed through."""
    if isinstance(pitch, (int, float)):
        return float(pitch)
    return float(ROOF_PITCH_DEGREES.get(str(pitch or "").lower(), DEFAULT_TILT_DEGREES))


def is_canadian(region: str) -> bool:
    return (region or "").upper() in CANADIAN_PROVINCES


def distribute_annual(annual_kwh: float, curve=None) -> list:
    """Spread an annual total over 12 months without rounding."""
    fractions = seasonal_curve() if curve is None else np.asarray(curve, dtype=float)
    return [float(v) for v in annual_kwh * fractions]


def fallback_production(system_kw: float, shading: str = "none") -> ProductionEstimate:
    """Yield-constant estimate used when PVWatts cannot be reached."""
    size = max(0.0, float(system_kw))
    annual = size * REGIONAL_YIELD_KWH_PER_KW * shading_factor(shading)
    monthly = distribute_annual(annual)
    capacity_factor = annual / (size * HOURS_PER_YEAR) if size > 0 else 0.0
    return ProductionEstimate(
        annual_kwh=int(round(annual)),
        monthly_kwh=[int(round(m)) for m in monthly],
        capacity_factor=capacity_factor,
        source="fallback",
    )


def validate_pvwatts_params(system_kw: float, lat: float, lng: float,
                            tilt: float, azimuth: float) -> list:
    """Problems that would make PVWatts reject a request."""
    problems = []
    if not system_kw or system_kw < 0.1:
        problems.append("system size must be at least 0.1 kW")
    if lat is None or not -90 <= lat <= 90:
        problems.append("latitude must be between -90 and 90")
    if lng is None or not -180 <= lng <= 180:
        problems.append("longitude must be between -180 and 180")
    if not 0 <= tilt <= 90:
        problems.append("tilt must be between 0 and 90")
    if not 0 <= azimuth <= 360:
        problems.append("azimuth must be between 0 and 360")
    return problems


def build_pvwatts_params(api_key: str, system_kw: float, lat: float, lng: float,
                         tilt: float, azimuth: float, region: str = None) -> dict:
    canadian = is_canadian(region)
    soiling = SOILING_CANADA if canadian else SOILING_DEFAULT
    params = {
        "api_key": api_key,
        "system_capacity": system_kw,
        "lat": lat,
        "lon": lng,
        "tilt": tilt,
        "azimuth": azimuth,
        "albedo": ALBEDO_CANADA if canadian else ALBEDO_DEFAULT,
        "soiling": "|".join(str(s) for s in soiling),
    }
    params.update(PVWATTS_PARAMS)
    return params


def fetch_pvwatts(params: dict, timeout: float = PVWATTS_TIMEOUT_SECONDS) -> dict:
    """Call PVWatts and return its ``outputs`` block.

    Raises:
        ProductionServiceError: on transport errors, HTTP errors, API error
            messages or a payload without 12 monthly values.
    """
    try:
        response = requests.get(PVWATTS_URL, params=params, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as err:
        raise ProductionServiceError("PVWatts request failed: %s" % err) from err
    except ValueError as err:
        raise ProductionServiceError("PVWatts returned invalid JSON") from err

    errors = payload.get("errors") or []
    if errors:
        raise ProductionServiceError("PVWatts error: %s" % "; ".join(str(e) for e in errors))

    outputs = payload.get("outputs") or {}
    monthly = outputs.get("ac_monthly")
    if not isinstance(monthly, list) or len(monthly) != 12:
        raise ProductionServiceError("PVWatts response has no 12-month AC output")
    try:
        values = [float(v) for v in monthly]
    except (TypeError, ValueError) as err:
        raise ProductionServiceError("PVWatts monthly output is not numeric") from err
    if not all(math.isfinite(v) and v >= 0 for v in values):
        raise ProductionServiceError("PVWatts monthly output has invalid values")
    return outputs


def estimate_production(system_kw: float, lat: float, lng: float,
                        roof_pitch="medium", region: str = None,
                        azimuth: float = 180, shading: str = "none",
                        bifacial: bool = False, api_key: str = None,
                        timeout: float = None) -> ProductionEstimate:
    """Annual and monthly AC production for a system.

    Args:
        system_kw: DC capacity.
        lat, lng: Site location.
        roof_pitch: Pitch class (flat/low/medium/steep) or tilt in degrees.
        region: Province or state code; Canadian codes get snow soiling.
        azimuth: Panel-facing azimuth.
        shading: none/light/moderate/heavy multiplier.
        bifacial: Apply the bifacial gain.
        api_key: PVWatts key; defaults to the NREL_API_KEY environment variable.
        timeout: Request timeout in seconds; defaults to PVWATTS_TIMEOUT or 10.

    Returns:
        ProductionEstimate. Never raises; falls back on any failure.
    """
    try:
        return _estimate_with_pvwatts(system_kw, lat, lng, roof_pitch, region, azimuth,
                                      shading, bifacial, api_key, timeout)
    except ProductionServiceError as err:
        _LOGGER.warning("Using fallback production estimate: %s", err)
    except (TypeError, ValueError, KeyError) as err:
        _LOGGER.warning("Using fallback production estimate after internal error: %s", err)

    try:
        return fallback_production(system_kw, shading)
    except (TypeError, ValueError) as err:
        _LOGGER.warning("Invalid system size %r, reporting zero production: %s", system_kw, err)
        return fallback_production(0.0)


def _estimate_with_pvwatts(system_kw, lat, lng, roof_pitch, region, azimuth,
                           shading, bifacial, api_key, timeout) -> ProductionEstimate:
    api_key = api_key or os.environ.get("NREL_API_KEY")
    if not api_key:
        raise ProductionServiceError("no NREL_API_KEY configured")
    if timeout is None:
        timeout = float(os.environ.get("PVWATTS_TIMEOUT", PVWATTS_TIMEOUT_SECONDS))

    tilt = roof_pitch_to_degrees(roof_pitch)
    problems = validate_pvwatts_params(system_kw, lat, lng, tilt, azimuth)
    if problems:
        raise ProductionServiceError("invalid PVWatts parameters: %s" % "; ".join(problems))

    params = build_pvwatts_params(api_key, system_kw, lat, lng, tilt, azimuth, region)
    outputs = fetch_pvwatts(params, timeout=timeout)

    multiplier = shading_factor(shading) * (BIFACIAL_GAIN if bifacial else 1.0)
    raw_monthly = [float(v) for v in outputs["ac_monthly"]]
    monthly = [v * multiplier for v in raw_monthly]
    annual = float(outputs.get("ac_annual", sum(raw_monthly))) * multiplier
    capacity_factor = float(outputs.get("capacity_factor", 0.0)) / 100 * multiplier

    _LOGGER.debug("PVWatts: %.1f kW at (%.4f, %.4f) -> %.0f kWh/yr", system_kw, lat, lng, annual)
    return ProductionEstimate(
        annual_kwh=int(round(annual)),
        monthly_kwh=[int(round(m)) for m in monthly],
        capacity_factor=capacity_factor,
        source="pvwatts",
        solrad_annual=outputs.get("solrad_annual"),
    )


def production_range(base_kwh: float) -> tuple:
    """(min, max) display range around a base estimate."""
    base = round(base_kwh)
    if base <= 0:
        return (0, 0)
    return (round(base * PRODUCTION_RANGE_MIN_MULTIPLIER),
            round(base * PRODUCTION_RANGE_MAX_MULTIPLIER))

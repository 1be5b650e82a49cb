"""Residential solar estimate.

Runs the whole pipeline for one request: roof geometry (or a roof size
preset) to panel layout, layout to production, production to savings.
All numbers are kept at full precision until the response is built, where
kWh are rounded to whole units, money to whole dollars and percentages to
one decimal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from constants import CO2_KG_PER_KWH, MONTH_NAMES
from equipment import (
    PANEL_OPTIONS,
    DEFAULT_PANEL_ID,
    calculate_system_cost,
    get_battery_spec,
    get_panel_spec,
    preset_roof_area,
    system_size_from_roof_area,
    validate_system,
)
from errors import ValidationError
from layout import RoofSection, SetbackConfig, layout_panels
from orientation import analyze_roof_orientation
from production import estimate_production, production_range
from rate_plans import ProvincialProgram, select_pricing_strategy
from simulation import DEFAULT_YEAR, run_simulation
from usage import UsageProfile
from utils import calculate_multi_year_projection

_LOGGER = logging.getLogger(__name__)

ROOF_TOO_SMALL = "roof_too_small"

# Keyword options accepted by the savings projection
FINANCE_OPTIONS = ("escalation_pct", "years", "finance_mode", "loan_term", "loan_rate",
                   "deposit_pct")


@dataclass
class EstimateRequest:
    """Inputs for one estimate.

    Either ``sections`` (roof faces, each a dict with ``coordinates`` and
    optionally ``id`` and ``azimuth``) or ``roof_preset`` / ``roof_area_sqft``
    must be given.
    """

    lat: float
    lng: float
    region: str = "ON"
    sections: list = None
    roof_preset: str = None
    roof_area_sqft: float = None
    annual_kwh: float = None
    usage_distribution: list = None
    interval_data: list = None
    rate_plan: str = None
    battery: str = None
    ai_mode: bool = False
    ai_tie_break: str = "earliest"
    shading: str = "none"
    roof_pitch: str = "medium"
    panel: str = DEFAULT_PANEL_ID
    layout_style: str = "auto"
    setback_m: float = None
    snow_loss_factor: float = None
    year: int = DEFAULT_YEAR
    finance: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "EstimateRequest":
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError("Unknown request fields: %s" % ", ".join(unknown),
                                  field=unknown[0])
        for name in ("lat", "lng"):
            if data.get(name) is None:
                raise ValidationError("%s is required" % name, field=name)
        finance = data.get("finance") or {}
        if not isinstance(finance, dict):
            raise ValidationError("finance must be a mapping of projection options",
                                  field="finance")
        bad_options = sorted(set(finance) - set(FINANCE_OPTIONS))
        if bad_options:
            raise ValidationError("Unknown finance options: %s" % ", ".join(bad_options),
                                  field="finance")
        return cls(**dict(data, finance=dict(finance)))


def round_kwh(value: float) -> int:
    return int(round(value))


def round_currency(value: float) -> int:
    return int(round(value))


def round_percent(value: float) -> float:
    return round(value, 1)


def build_sections(raw_sections) -> list:
    sections = []
    for index, raw in enumerate(raw_sections):
        if isinstance(raw, RoofSection):
            sections.append(raw)
        elif isinstance(raw, dict):
            if "coordinates" not in raw:
                raise ValidationError("Roof section %d has no coordinates" % index,
                                      field="sections")
            sections.append(RoofSection(
                id=str(raw.get("id", "section-%d" % (index + 1))),
                coordinates=raw["coordinates"],
                azimuth=raw.get("azimuth"),
                geographic=raw.get("geographic", True),
            ))
        else:
            sections.append(RoofSection(id="section-%d" % (index + 1), coordinates=list(raw)))
    return sections


def _roof_from_sections(request, panel) -> dict:
    sections = build_sections(request.sections)
    setbacks = SetbackConfig.uniform(request.setback_m) if request.setback_m is not None else None
    layout = layout_panels(sections, panel=panel, setbacks=setbacks, style=request.layout_style)
    orientations = {
        s.id: analyze_roof_orientation(s.coordinates, s.azimuth, s.geographic).to_dict()
        for s in sections
    }
    return {
        "source": "layout",
        "panel_count": layout.panel_count,
        "system_kw": layout.capacity_kw,
        "azimuth": layout.primary_azimuth,
        "roof_area_m2": layout.roof_area_m2,
        "layout": layout,
        "orientations": orientations,
    }


def _roof_from_preset(request, panel) -> dict:
    area = request.roof_area_sqft
    if area is None:
        if not request.roof_preset:
            raise ValidationError("Roof sections, a roof size preset or a roof area is required",
                                  field="sections")
        area = preset_roof_area(request.roof_preset)
    sizing = system_size_from_roof_area(area, request.shading, panel)
    return {
        "source": "preset",
        "panel_count": sizing["panel_count"],
        "system_kw": sizing["system_kw"],
        "azimuth": 180.0,
        "roof_area_m2": None,
        "layout": None,
        "orientations": {},
    }


def _usage_profile(request) -> UsageProfile:
    if not request.interval_data and request.annual_kwh is None:
        raise ValidationError("Annual usage or interval data is required", field="annual_kwh")
    return UsageProfile(
        annual_kwh=request.annual_kwh or 0.0,
        monthly_distribution=request.usage_distribution,
        interval_data=request.interval_data,
    )


def estimate(request) -> dict:
    """Compute a full estimate.

    Args:
        request: EstimateRequest or a dict of its fields.

    Returns:
        Plain dict with the roof, production, cost and savings sections,
        rounded for display. When no panel fits, ``status`` is
        ``roof_too_small`` and only the roof section is filled in.

    Raises:
        ValidationError: Malformed input, unknown battery or rate plan ids.
    """
    if isinstance(request, dict):
        request = EstimateRequest.from_dict(request)

    # Everything that can be rejected is checked before any work is done
    battery = get_battery_spec(request.battery) if request.battery else None
    pricing = select_pricing_strategy(request.region, request.rate_plan,
                                      request.snow_loss_factor)
    usage = _usage_profile(request)
    panel = get_panel_spec(request.panel)

    if request.sections:
        roof = _roof_from_sections(request, panel)
    else:
        roof = _roof_from_preset(request, panel)

    roof_response = {
        "source": roof["source"],
        "panel_count": roof["panel_count"],
        "system_kw": round(roof["system_kw"], 2),
        "azimuth": roof["azimuth"],
        "orientations": roof["orientations"],
    }
    if roof["layout"] is not None:
        layout = roof["layout"]
        roof_response.update({
            "section_counts": dict(layout.section_counts),
            "coverage_ratio": round_percent(layout.coverage_ratio * 100),
            "roof_area_m2": round(layout.roof_area_m2, 1),
            "panels": [p.to_dict() for p in layout.panels],
        })

    if roof["panel_count"] == 0:
        _LOGGER.info("No panels fit on the roof")
        return {
            "status": ROOF_TOO_SMALL,
            "message": "The roof is too small for any panels with the required setbacks",
            "roof": roof_response,
        }

    system_kw = roof["system_kw"]
    production = estimate_production(
        system_kw, request.lat, request.lng,
        roof_pitch=request.roof_pitch,
        region=request.region,
        azimuth=roof["azimuth"],
        shading=request.shading,
        bifacial=PANEL_OPTIONS[request.panel or DEFAULT_PANEL_ID]["bifacial"],
    )
    costs = calculate_system_cost(system_kw, request.region, battery)
    result = run_simulation(
        production.monthly_kwh, usage, pricing, battery,
        ai_mode=request.ai_mode,
        year=request.year,
        net_system_cost=costs["net_cost"],
        ai_tie_break=request.ai_tie_break,
    )
    projection = calculate_multi_year_projection(costs["net_cost"], result.annual_savings,
                                                 **request.finance)
    errors, warnings = validate_system(system_kw, battery)

    low, high = production_range(production.annual_kwh)
    response = {
        "status": "ok",
        "roof": roof_response,
        "production": {
            "annual_production_kwh": round_kwh(production.annual_kwh),
            "monthly_production_kwh": [round_kwh(v) for v in production.monthly_kwh],
            "capacity_factor": round_percent(production.capacity_factor * 100),
            "source": production.source,
            "range_kwh": [low, high],
        },
        "costs": {name: round_currency(value) for name, value in costs.items()},
        "savings": savings_response(result),
        "projection": {
            "payback_years": round(projection["payback_years"], 1),
            "total_savings": round_currency(projection["total_savings"]),
            "net_profit": round_currency(projection["net_profit"]),
            "roi_percent": round_percent(projection["roi_percent"]),
            "cumulative_cashflow": [round_currency(v) for v in projection["cumulative_cashflow"]],
        },
        "environmental": {
            "co2_tonnes_per_year": round(production.annual_kwh * CO2_KG_PER_KWH / 1000, 1),
        },
        "battery": battery.id if battery else None,
        "errors": errors,
        "warnings": warnings + result.warnings,
    }
    if isinstance(pricing, ProvincialProgram):
        response["program"] = program_response(result.program)
    return response


def savings_response(result) -> dict:
    months = []
    for month in result.months:
        months.append({
            "month": MONTH_NAMES[month.month],
            "generation_kwh": round_kwh(month.generation_kwh),
            "consumption_kwh": round_kwh(month.consumption_kwh),
            "self_consumed_kwh": round_kwh(month.self_consumed_kwh),
            "exported_kwh": round_kwh(month.exported_kwh),
            "imported_kwh": round_kwh(month.imported_kwh),
            "battery_discharge_kwh": round_kwh(month.battery_discharge_kwh),
            "import_cost": round_currency(month.import_cost),
            "export_credit": round_currency(month.export_credit),
            "net_bill": round_currency(month.net_bill),
            "savings": round_currency(month.savings),
        })
    return {
        "strategy": result.strategy,
        "plan": result.plan_id,
        "granularity": result.granularity,
        "ai_mode": result.ai_mode,
        "annual_savings": round_currency(result.annual_savings),
        "monthly_savings": [round_currency(v) for v in result.monthly_savings],
        "baseline_annual_cost": round_currency(result.baseline_annual_cost),
        "annual_net_bill": round_currency(result.annual_net_bill),
        "bill_offset_percent": round_percent(result.bill_offset_percent),
        "energy_offset_percent": round_percent(result.energy_offset_percent),
        "annual_exported_kwh": round_kwh(result.annual_exported_kwh),
        "annual_imported_kwh": round_kwh(result.annual_imported_kwh),
        "battery_throughput_kwh": round_kwh(result.battery_throughput_kwh),
        "credit_balance": round_currency(result.credit_balance),
        "net_system_cost": round_currency(result.net_system_cost),
        "payback_years": round(result.payback_years, 1),
        "months": months,
    }


def program_response(program: dict) -> dict:
    seasons = {}
    for name, season in program["seasons"].items():
        seasons[name] = {
            "months": season["months"],
            "exported_kwh": round_kwh(season["exported_kwh"]),
            "export_credits": round_currency(season["export_credits"]),
            "imported_kwh": round_kwh(season["imported_kwh"]),
            "import_cost": round_currency(season["import_cost"]),
        }
    return {
        "region": program["region"],
        "cash_back": round_currency(program["cash_back"]),
        "estimated_carbon_credits": round_currency(program["estimated_carbon_credits"]),
        "seasons": seasons,
    }

"""Equipment reference data and system pricing.

Battery and panel catalogs are read-only lookups by id. Prices are CAD
before rebates.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import DAYS_PER_YEAR, REGIONAL_YIELD_KWH_PER_KW
from errors import ReferenceDataError, ValidationError
from layout import PanelSpec

# Panel options
PANEL_OPTIONS = {
    "ts-bgt54-500": {
        "model": "TS-BGT54(500)-G11",
        "width_m": 1.134,
        "height_m": 1.961,
        "watts": 500,
        "bifacial": True,
        "description": "N-type monocrystalline bifacial panel",
    },
    "standard-400": {
        "model": "Generic 400W mono",
        "width_m": 1.046,
        "height_m": 1.690,
        "watts": 400,
        "bifacial": False,
        "description": "Typical residential monofacial panel",
    },
}
DEFAULT_PANEL_ID = "ts-bgt54-500"

# Battery options
BATTERY_OPTIONS = {
    "renon-16": {
        "brand": "Renon",
        "model": "16 kWh",
        "nominal_kwh": 16,
        "usable_kwh": 14.4,
        "round_trip_efficiency": 0.90,
        "inverter_kw": 5.0,
        "price": 8000,
        "warranty_years": 10,
        "warranty_cycles": 6000,
        "description": "Compact and affordable solution for basic peak shaving",
    },
    "renon-32": {
        "brand": "Renon",
        "model": "32 kWh",
        "nominal_kwh": 32,
        "usable_kwh": 28.8,
        "round_trip_efficiency": 0.90,
        "inverter_kw": 10.0,
        "price": 11000,
        "warranty_years": 10,
        "warranty_cycles": 6000,
        "description": "High capacity for maximum peak shaving potential",
    },
    "tesla-powerwall": {
        "brand": "Tesla",
        "model": "Powerwall 13.5",
        "nominal_kwh": 13.5,
        "usable_kwh": 12.825,
        "round_trip_efficiency": 0.92,
        "inverter_kw": 5.0,
        "price": 17000,
        "warranty_years": 10,
        "warranty_cycles": 3650,
        "description": "Premium battery with industry-leading efficiency",
    },
    "growatt-10": {
        "brand": "Growatt",
        "model": "10 kWh",
        "nominal_kwh": 10,
        "usable_kwh": 9.0,
        "round_trip_efficiency": 0.90,
        "inverter_kw": 5.0,
        "price": 10000,
        "warranty_years": 10,
        "warranty_cycles": 6000,
        "description": "Entry-level battery for small homes",
    },
}

BATTERY_REBATE_PER_KWH = 300   # per kWh nominal
BATTERY_REBATE_MAX = 5000

# Installed price per watt by system size, interpolated between points
PRICE_PER_WATT_TIERS = [
    (4, 5.33), (5, 4.34), (6, 4.05), (7, 3.81), (8, 3.56),
    (9, 3.39), (10, 3.31), (12, 3.27), (15, 3.22), (20, 3.14), (25, 3.09),
]

PROVINCES = {
    "ON": {
        "name": "Ontario",
        "tax_pct": 13,
        "grants": 5000,        # Greener Homes grant
    },
    "AB": {
        "name": "Alberta",
        "tax_pct": 5,
        "grants": 5000,
    },
}
DEFAULT_PROVINCE = "ON"

# Simplified roof-size presets (sq ft)
ROOF_SIZE_PRESETS = {
    "small": 800,
    "medium": 1500,
    "large": 2500,
    "xlarge": 3500,
}
PANEL_AREA_SQFT = 17.5
USABLE_ROOF_FRACTION = {
    "none": 0.75,
    "light": 0.75,
    "moderate": 0.6,
    "heavy": 0.45,
}
SQFT_PER_M2 = 10.7639


@dataclass(frozen=True)
class BatterySpec:
    """Battery parameters used by the simulations.

    ``usable_kwh`` already reflects the depth of discharge limit.
    """

    id: str
    nominal_kwh: float
    usable_kwh: float
    round_trip_efficiency: float
    inverter_kw: float
    price: float = 0.0
    c_rate: float = None

    def __post_init__(self):
        if self.nominal_kwh <= 0 or self.usable_kwh <= 0:
            raise ValidationError("Battery capacity must be positive", field="battery")
        if self.usable_kwh > self.nominal_kwh:
            raise ValidationError("Usable capacity cannot exceed nominal capacity",
                                  field="battery")
        if not 0 < self.round_trip_efficiency <= 1:
            raise ValidationError("Round-trip efficiency must be in (0, 1]", field="battery")
        if self.inverter_kw <= 0:
            raise ValidationError("Inverter power must be positive", field="battery")

    @property
    def depth_of_discharge(self) -> float:
        return self.usable_kwh / self.nominal_kwh


def get_battery_spec(battery_id: str) -> BatterySpec:
    """Look up a battery by id; unknown ids are rejected."""
    data = BATTERY_OPTIONS.get(battery_id)
    if data is None:
        raise ReferenceDataError("Unknown battery %r" % (battery_id,), field="battery")
    return BatterySpec(
        id=battery_id,
        nominal_kwh=data["nominal_kwh"],
        usable_kwh=data["usable_kwh"],
        round_trip_efficiency=data["round_trip_efficiency"],
        inverter_kw=data["inverter_kw"],
        price=data["price"],
    )


def get_panel_spec(panel_id: str = None) -> PanelSpec:
    data = PANEL_OPTIONS.get(panel_id or DEFAULT_PANEL_ID)
    if data is None:
        raise ReferenceDataError("Unknown panel %r" % (panel_id,), field="panel")
    return PanelSpec(width_m=data["width_m"], height_m=data["height_m"], watts=data["watts"])


def calculate_battery_rebate(nominal_kwh: float) -> float:
    return min(nominal_kwh * BATTERY_REBATE_PER_KWH, BATTERY_REBATE_MAX)


def price_per_watt(system_kw: float) -> float:
    """Installed $/W for a system size, linear between tier points."""
    tiers = PRICE_PER_WATT_TIERS
    if system_kw <= tiers[0][0]:
        return tiers[0][1]
    if system_kw >= tiers[-1][0]:
        return tiers[-1][1]
    for (size_lo, price_lo), (size_hi, price_hi) in zip(tiers, tiers[1:]):
        if size_lo <= system_kw <= size_hi:
            fraction = (system_kw - size_lo) / (size_hi - size_lo)
            return price_lo + fraction * (price_hi - price_lo)
    return tiers[-1][1]


def get_province(code: str = None) -> dict:
    """Province cost data; unknown or missing codes use Ontario."""
    return PROVINCES.get((code or DEFAULT_PROVINCE).upper(), PROVINCES[DEFAULT_PROVINCE])


def calculate_system_cost(system_kw: float, province: str = None,
                          battery: BatterySpec = None) -> dict:
    """Installed cost before and after incentives.

    Solar is priced from the per-watt tiers, with the province's tax and
    grants applied. A battery adds its price less the battery rebate.
    """
    config = get_province(province)
    solar_cost = system_kw * 1000 * price_per_watt(system_kw) if system_kw > 0 else 0.0
    tax = solar_cost * config["tax_pct"] / 100
    grants = min(config["grants"], solar_cost + tax) if system_kw > 0 else 0.0

    battery_cost = battery.price if battery else 0.0
    battery_rebate = min(calculate_battery_rebate(battery.nominal_kwh), battery_cost) if battery else 0.0

    total = solar_cost + tax + battery_cost
    incentives = grants + battery_rebate
    return {
        "solar_cost": solar_cost,
        "tax": tax,
        "battery_cost": battery_cost,
        "total_cost": total,
        "grants": grants,
        "battery_rebate": battery_rebate,
        "incentives": incentives,
        "net_cost": total - incentives,
    }


def system_size_from_roof_area(roof_area_sqft: float, shading: str = "none",
                               panel: PanelSpec = None) -> dict:
    """Panel count and size for a roof given only its area."""
    if roof_area_sqft is None or roof_area_sqft <= 0:
        raise ValidationError("Roof area must be positive", field="roof_area")
    panel = panel or get_panel_spec()
    usable = roof_area_sqft * USABLE_ROOF_FRACTION.get((shading or "none").lower(), 0.75)
    panel_count = int(usable // PANEL_AREA_SQFT)
    return {
        "panel_count": panel_count,
        "system_kw": panel_count * panel.kw,
        "usable_area_sqft": usable,
    }


def preset_roof_area(preset: str) -> float:
    area = ROOF_SIZE_PRESETS.get((preset or "").lower())
    if area is None:
        raise ValidationError("Unknown roof size preset %r (expected one of %s)"
                              % (preset, ", ".join(ROOF_SIZE_PRESETS)), field="roof_preset")
    return area


def validate_system(system_kw: float, battery: BatterySpec = None) -> tuple:
    """Sanity checks on a configured system.

    Returns:
        Tuple of (errors, warnings) lists
    """
    errors = []
    warnings = []

    if system_kw <= 0:
        errors.append("The roof has no room for panels")
    elif system_kw < 3:
        warnings.append("Systems under 3 kW are rarely economical")

    if battery and system_kw > 0:
        daily_solar = system_kw * REGIONAL_YIELD_KWH_PER_KW / DAYS_PER_YEAR
        if battery.usable_kwh > daily_solar * 1.5:
            warnings.append(
                "Battery (%.1f kWh) is large for the average daily solar output (%.1f kWh)"
                % (battery.usable_kwh, daily_solar))
        if battery.inverter_kw < system_kw / 4:
            warnings.append("Battery inverter may limit how much solar can be stored")

    return errors, warnings

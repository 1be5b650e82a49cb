"""Constants for solar estimate calculations.

Monetary rates are in dollars per kWh unless the name says otherwise.
"""

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

HOURS_PER_YEAR = 8760
DAYS_PER_YEAR = 365

# Payback periods longer than this are reported as exactly this value
PAYBACK_CAP_YEARS = 25.0

# ---------------------------------------------------------------------------
# Production
# ---------------------------------------------------------------------------

# Empirical yield for the reference market (kWh per kW DC per year)
REGIONAL_YIELD_KWH_PER_KW = 1200

# Seasonal production weights, winter-low / summer-high.
# Normalised to sum to 1.0 before use.
PRODUCTION_SEASONAL_WEIGHTS = [0.051, 0.067, 0.087, 0.099, 0.116, 0.122,
                               0.127, 0.118, 0.103, 0.084, 0.057, 0.049]

SHADING_FACTORS = {
    "none": 1.0,
    "light": 0.9,
    "moderate": 0.75,
    "heavy": 0.5,
}

# Roof pitch class -> tilt in degrees
ROOF_PITCH_DEGREES = {
    "flat": 5,
    "low": 15,
    "medium": 30,
    "steep": 45,
}
DEFAULT_TILT_DEGREES = 30

PVWATTS_URL = "https://developer.nrel.gov/api/pvwatts/v8.json"
PVWATTS_TIMEOUT_SECONDS = 10
PVWATTS_PARAMS = {
    "module_type": 1,       # Premium
    "losses": 14,           # % system losses
    "array_type": 1,        # Fixed roof mount
    "dc_ac_ratio": 1.2,
    "inv_eff": 96,
    "dataset": "nsrdb",
    "timeframe": "monthly",
}
BIFACIAL_GAIN = 1.04

# Monthly soiling loss (%), snow-heavy for Canadian provinces
SOILING_CANADA = [12, 10, 8, 4, 2, 1, 1, 2, 3, 5, 8, 10]
SOILING_DEFAULT = [2, 2, 3, 3, 4, 4, 5, 5, 4, 3, 2, 2]
ALBEDO_CANADA = 0.35
ALBEDO_DEFAULT = 0.2

CANADIAN_PROVINCES = ["AB", "BC", "MB", "NB", "NL", "NS", "NT", "NU",
                      "ON", "PE", "QC", "SK", "YT"]

# Display range around a base production estimate
PRODUCTION_RANGE_MIN_MULTIPLIER = 1.10
PRODUCTION_RANGE_MAX_MULTIPLIER = 1.19

# Relative solar output for each hour of the day (normalised before use)
HOURLY_PRODUCTION_SHAPE = [0, 0, 0, 0, 0, 0, 0,
                           0.05, 0.15, 0.35, 0.55, 0.75, 0.90, 1.0,
                           0.95, 0.85, 0.70, 0.50, 0.25, 0.10,
                           0, 0, 0, 0]

# ---------------------------------------------------------------------------
# Orientation
# ---------------------------------------------------------------------------

DEFAULT_AZIMUTH = 180.0
AZIMUTH_ROUNDING_STEP = 5

# (max angular distance from due south, efficiency %), upper bound inclusive
ORIENTATION_EFFICIENCY_BANDS = [
    (22.5, 100),   # S
    (45.0, 96),    # SE / SW
    (67.5, 92),    # ESE / WSW
    (112.5, 82),   # E / W
    (157.5, 72),   # NE / NW
    (180.0, 55),   # N
]

# 45 degree buckets centred on each direction
COMPASS_DIRECTIONS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]

ORIENTATION_QUALITY = [
    (95, "Excellent"),
    (85, "Good"),
    (70, "Fair"),
    (0, "Poor"),
]

# ---------------------------------------------------------------------------
# Panel layout
# ---------------------------------------------------------------------------

DEFAULT_PANEL = {
    "width_m": 1.134,
    "height_m": 1.961,
    "watts": 500,
    "row_spacing_m": 0.02,
    "column_spacing_m": 0.02,
}

# Fire-code clearances (m)
DEFAULT_SETBACKS = {
    "eave": 0.15,
    "ridge": 0.15,
    "valley": 0.15,
    "rake": 0.15,
}

# Rotations closer than this (degrees) are considered the same variant
ROTATION_DEDUPE_DEGREES = 5.0

METERS_PER_DEGREE = 111320.0

# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

# Seasonal household usage weights, winter heavy (normalised before use)
USAGE_SEASONAL_WEIGHTS = [11, 10, 8.5, 7, 6.5, 7.5, 9.5, 9.5, 7.5, 7, 8, 9.5]

# Tiered bills assume level monthly usage
UNIFORM_USAGE_WEIGHTS = [1] * 12

# Share of daily usage per hour of day, evening peak (normalised before use)
HOURLY_USAGE_SHAPE = [2.5, 2.0, 1.8, 1.6, 1.5, 1.8, 2.5, 4.5, 5.5, 5.0, 4.5, 4.0,
                      4.0, 3.8, 3.5, 3.8, 5.0, 6.5, 7.5, 7.0, 6.0, 5.5, 4.5, 3.5]

# Tolerance on distribution sums
DISTRIBUTION_TOLERANCE = 0.01

# Solar below this share of load triggers a sizing warning
LOW_SOLAR_WARNING_RATIO = 0.6

# Interval data covering less of the year than this triggers a warning
INTERVAL_COVERAGE_WARNING_RATIO = 0.9

# Export credits expire after this many months
CREDIT_EXPIRY_MONTHS = 12

# ---------------------------------------------------------------------------
# Rates ($/kWh)
# ---------------------------------------------------------------------------

FLAT_RATE = 0.134

TOU_RATES = {
    "off_peak": 0.098,
    "mid_peak": 0.157,
    "on_peak": 0.203,
}

ULO_RATES = {
    "ultra_low": 0.039,
    "weekend_off_peak": 0.098,
    "mid_peak": 0.157,
    "on_peak": 0.391,
}

TIERED_RATES = {
    "tier1": 0.103,
    "tier2": 0.125,
    "threshold_kwh": 600,  # per month
}

# Added to the tier 1 rate for export credits
TIERED_EXPORT_PREMIUM = 0.02

# Summer schedule months (May - Oct), winter otherwise
SUMMER_MONTHS = [5, 6, 7, 8, 9, 10]

# Annual usage split by TOU period, used for monthly pricing of windowed plans (%)
TOU_PERIOD_DISTRIBUTION = {"on_peak": 19, "mid_peak": 18, "off_peak": 63}
ULO_PERIOD_DISTRIBUTION = {"on_peak": 17.9, "mid_peak": 33.1,
                           "weekend_off_peak": 23, "ultra_low": 26}

# ---------------------------------------------------------------------------
# Provincial program (solar club style settlement)
# ---------------------------------------------------------------------------

SOLAR_CLUB_REGIONS = ["AB"]
SOLAR_CLUB = {
    "high_export_rate": 0.33,
    "low_rate": 0.0689,
    "high_months": [4, 5, 6, 7, 8, 9],  # Apr - Sep
    "cash_back_pct": 3.0,
    "snow_loss_factor": 0.03,           # applied Oct - Mar
    "carbon_credit_per_kwh": 0.01,
    "carbon_credit_min": 50,
    "carbon_credit_max": 200,
}

# ---------------------------------------------------------------------------
# Simplified peak shaving
# ---------------------------------------------------------------------------

BATTERY_MAX_CYCLES_PER_YEAR = 365

# Share of annual usage during daylight; solar can only offset this part
DAYTIME_USAGE_SHARE = 0.5

# Discharge order, most expensive first
PERIOD_PRIORITY = ["on_peak", "mid_peak", "off_peak", "weekend_off_peak", "ultra_low"]

# ---------------------------------------------------------------------------
# Financials
# ---------------------------------------------------------------------------

RATE_ESCALATION_PCT = 5.0
PROJECTION_YEARS = 25
CO2_KG_PER_KWH = 0.32

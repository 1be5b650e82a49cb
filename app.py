"""Solar Estimator Streamlit Dashboard.

An interactive front end over the estimate pipeline: roof layout,
production, rate plan simulation and payback for Canadian homes, plus a
commercial demand charge calculator.
"""

import json
import logging

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from commercial import calculate_commercial
from constants import (
    FLAT_RATE,
    MONTH_NAMES,
    SHADING_FACTORS,
    SOLAR_CLUB,
    TIERED_RATES,
    TOU_RATES,
    ULO_RATES,
)
from equipment import BATTERY_OPTIONS, PANEL_OPTIONS, PROVINCES, ROOF_SIZE_PRESETS, get_battery_spec
from errors import EstimatorError
from estimator import ROOF_TOO_SMALL, estimate
from peak_shaving import calculate_peak_shaving
from quotation import generate_estimate_pdf
from rate_plans import RATE_PLANS, get_rate_plan

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

st.set_page_config(
    page_title="Solar Savings Estimator",
    page_icon="☀️",
    layout="wide"
)

st.markdown("""
<style>
    [data-testid="stSidebar"] {
        background-color: #fef9e7;
    }
    [data-testid="stSidebar"] label,
    [data-testid="stSidebar"] p,
    [data-testid="stSidebar"] span {
        color: #1a1a1a !important;
        font-weight: 500 !important;
    }
    [data-testid="stSidebar"] h1,
    [data-testid="stSidebar"] h2,
    [data-testid="stSidebar"] h3 {
        color: #0d0d0d !important;
        font-weight: 700 !important;
    }
</style>
""", unsafe_allow_html=True)

st.title("☀️ Solar Savings Estimator")

tab_estimate, tab_commercial, tab_assumptions = st.tabs(
    ["Home Estimate", "Commercial Peak Shaving", "Assumptions"])

with tab_assumptions:
    st.header("Default Values")

    st.subheader("Electricity Rates")
    st.markdown(f"""
    | Plan | Rates |
    |------|-------|
    | **Time-of-Use** | off-peak {TOU_RATES['off_peak'] * 100:.1f}¢, mid-peak {TOU_RATES['mid_peak'] * 100:.1f}¢, on-peak {TOU_RATES['on_peak'] * 100:.1f}¢ per kWh |
    | **Ultra-Low Overnight** | ultra-low {ULO_RATES['ultra_low'] * 100:.1f}¢, weekend {ULO_RATES['weekend_off_peak'] * 100:.1f}¢, mid-peak {ULO_RATES['mid_peak'] * 100:.1f}¢, on-peak {ULO_RATES['on_peak'] * 100:.1f}¢ per kWh |
    | **Tiered** | {TIERED_RATES['tier1'] * 100:.1f}¢ up to {TIERED_RATES['threshold_kwh']} kWh/month, {TIERED_RATES['tier2'] * 100:.1f}¢ above |
    | **Flat** | {FLAT_RATE * 100:.1f}¢ per kWh |
    | **Alberta Solar Club** | exports {SOLAR_CLUB['high_export_rate'] * 100:.0f}¢ in Apr-Sep, {SOLAR_CLUB['low_rate'] * 100:.2f}¢ otherwise; imports {SOLAR_CLUB['low_rate'] * 100:.2f}¢; {SOLAR_CLUB['cash_back_pct']:.0f}% cash back |
    """)

    st.subheader("Production")
    st.markdown("""
    Production comes from NREL PVWatts when an `NREL_API_KEY` is configured. Otherwise
    a regional average of 1,200 kWh per kW per year is spread over the months with a
    seasonal curve. Shading reduces either estimate.
    """)
    st.dataframe(pd.DataFrame({
        "Shading": list(SHADING_FACTORS),
        "Production multiplier": list(SHADING_FACTORS.values()),
    }), hide_index=True)

    st.subheader("Payback")
    st.markdown("""
    Paybacks longer than 25 years are shown as 25 years. Savings are projected with
    electricity prices rising 5% per year.
    """)


def roof_inputs() -> dict:
    """Sidebar roof inputs as estimate request fields."""
    st.sidebar.header("Roof")
    mode = st.sidebar.radio("Roof input", ["Preset size", "Rectangle", "Coordinates"])

    if mode == "Preset size":
        preset = st.sidebar.selectbox(
            "Roof size", list(ROOF_SIZE_PRESETS),
            format_func=lambda key: f"{key.title()} ({ROOF_SIZE_PRESETS[key]:,} sq ft)")
        return {"roof_preset": preset}

    if mode == "Rectangle":
        width = st.sidebar.number_input("Roof width (m)", 2.0, 40.0, 10.0, 0.5)
        depth = st.sidebar.number_input("Roof depth (m)", 2.0, 20.0, 6.0, 0.5)
        azimuth = st.sidebar.slider("Facing azimuth (°)", 0, 355, 180, 5)
        return {"sections": [{
            "id": "main",
            "coordinates": [(0, 0), (width, 0), (width, depth), (0, depth)],
            "azimuth": azimuth,
            "geographic": False,
        }]}

    raw = st.sidebar.text_area(
        "Roof sections (JSON)",
        value='[{"id": "south", "coordinates": [[-79.3832, 43.6532], [-79.3831, 43.6532], '
              '[-79.3831, 43.65326], [-79.3832, 43.65326]]}]',
        height=150,
    )
    try:
        return {"sections": json.loads(raw)}
    except ValueError:
        st.sidebar.error("Roof sections are not valid JSON")
        return {}


def usage_inputs() -> dict:
    st.sidebar.header("Household Usage")
    annual_kwh = st.sidebar.slider("Annual usage (kWh)", 2000, 30000, 9000, 500)
    fields = {"annual_kwh": annual_kwh}

    if st.sidebar.checkbox("Custom monthly split", value=False):
        shares = []
        cols = st.sidebar.columns(3)
        for i, name in enumerate(MONTH_NAMES):
            with cols[i % 3]:
                shares.append(st.number_input(name, 0.0, 100.0, round(100 / 12, 2), 0.5, key=f"dist_{name}"))
        total = sum(shares)
        st.sidebar.caption(f"Total: {total:.1f}%")
        fields["usage_distribution"] = shares
    return fields


def show_estimate(response: dict):
    roof = response["roof"]
    production = response["production"]
    costs = response["costs"]
    savings = response["savings"]
    projection = response["projection"]

    st.header("Summary")
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Panels", f"{roof['panel_count']}")
        st.metric("System Size", f"{roof['system_kw']:.2f} kW")
    with col2:
        st.metric("Annual Production", f"{production['annual_production_kwh']:,} kWh")
        st.caption("PVWatts" if production["source"] == "pvwatts" else "Regional average estimate")
    with col3:
        st.metric("Year 1 Savings", f"${savings['annual_savings']:,}")
        st.metric("Bill Offset", f"{savings['bill_offset_percent']}%")
    with col4:
        st.metric("Net Cost", f"${costs['net_cost']:,}")
        st.metric("Payback", f"{savings['payback_years']} years")

    for error in response["errors"]:
        st.error(error)
    for warning in response["warnings"]:
        st.warning(warning)

    program = response.get("program")
    if program:
        st.subheader("Solar Club")
        seasons = program["seasons"]
        col_a, col_b, col_c = st.columns(3)
        with col_a:
            st.metric("Summer Export Credits", f"${seasons['high_production']['export_credits']:,}")
        with col_b:
            st.metric("Winter Export Credits", f"${seasons['low_production']['export_credits']:,}")
        with col_c:
            st.metric("Cash Back", f"${program['cash_back']:,}")

    st.header("Charts")
    df_months = pd.DataFrame(savings["months"])

    col_chart1, col_chart2 = st.columns(2)
    with col_chart1:
        st.subheader("Monthly Generation vs Consumption")
        fig1 = go.Figure()
        fig1.add_trace(go.Bar(x=df_months["month"], y=df_months["generation_kwh"],
                              name="Solar", marker_color="#FFD93D"))
        fig1.add_trace(go.Scatter(x=df_months["month"], y=df_months["consumption_kwh"],
                                  name="Consumption", line=dict(color="#6BCB77", width=3)))
        fig1.update_layout(yaxis_title="kWh", legend=dict(orientation="h", yanchor="bottom", y=1.02),
                           height=400)
        st.plotly_chart(fig1, use_container_width=True)

    with col_chart2:
        st.subheader("Monthly Bill")
        fig2 = go.Figure()
        fig2.add_trace(go.Bar(x=df_months["month"], y=df_months["import_cost"],
                              name="Grid purchases", marker_color="#E74C3C"))
        fig2.add_trace(go.Bar(x=df_months["month"], y=-df_months["export_credit"],
                              name="Export credits", marker_color="#4ECDC4"))
        fig2.add_trace(go.Scatter(x=df_months["month"], y=df_months["net_bill"],
                                  name="Net bill", line=dict(color="#2E86AB", width=3)))
        fig2.update_layout(barmode="relative", yaxis_title="$",
                           legend=dict(orientation="h", yanchor="bottom", y=1.02), height=400)
        st.plotly_chart(fig2, use_container_width=True)

    st.subheader("Annual Energy Flow")
    df_energy = pd.DataFrame({
        "Category": ["Direct Use", "Battery", "Export", "Grid Supply"],
        "kWh": [
            df_months["self_consumed_kwh"].sum(),
            df_months["battery_discharge_kwh"].sum(),
            df_months["exported_kwh"].sum(),
            df_months["imported_kwh"].sum(),
        ],
    })
    fig3 = px.bar(df_energy, x="Category", y="kWh", color="Category",
                  color_discrete_sequence=["#4ECDC4", "#9B59B6", "#FFD93D", "#E74C3C"])
    fig3.update_layout(showlegend=False, height=400)
    st.plotly_chart(fig3, use_container_width=True)

    st.subheader("Cumulative Cashflow")
    cashflow = projection["cumulative_cashflow"]
    df_cashflow = pd.DataFrame({"Year": list(range(1, len(cashflow) + 1)), "Cashflow": cashflow})
    fig4 = go.Figure()
    fig4.add_trace(go.Scatter(x=df_cashflow["Year"], y=df_cashflow["Cashflow"],
                              name="Cumulative cashflow", line=dict(color="#2E86AB", width=3)))
    fig4.add_hline(y=0, line_dash="dash", line_color="gray")
    fig4.update_layout(xaxis_title="Year", yaxis_title="Cumulative Cashflow ($)", height=400)
    st.plotly_chart(fig4, use_container_width=True)

    if roof.get("panels"):
        st.subheader("Panel Layout")
        fig5 = go.Figure()
        for panel in roof["panels"]:
            xs = [p[0] for p in panel["footprint"]] + [panel["footprint"][0][0]]
            ys = [p[1] for p in panel["footprint"]] + [panel["footprint"][0][1]]
            fig5.add_trace(go.Scatter(x=xs, y=ys, fill="toself", mode="lines",
                                      line=dict(color="#2E86AB", width=1),
                                      fillcolor="rgba(46,134,171,0.4)", showlegend=False))
        fig5.update_yaxes(scaleanchor="x", scaleratio=1)
        fig5.update_layout(height=450)
        st.plotly_chart(fig5, use_container_width=True)

    st.header("Monthly Detail")
    st.dataframe(df_months.rename(columns={
        "month": "Month",
        "generation_kwh": "Solar (kWh)",
        "consumption_kwh": "Usage (kWh)",
        "self_consumed_kwh": "Direct Use (kWh)",
        "exported_kwh": "Exported (kWh)",
        "imported_kwh": "Imported (kWh)",
        "battery_discharge_kwh": "Battery (kWh)",
        "import_cost": "Purchases ($)",
        "export_credit": "Credits ($)",
        "net_bill": "Net Bill ($)",
        "savings": "Savings ($)",
    }), hide_index=True, use_container_width=True)


with tab_estimate:
    st.sidebar.header("Location")
    region = st.sidebar.selectbox("Province", list(PROVINCES),
                                  format_func=lambda code: PROVINCES[code]["name"])
    lat = st.sidebar.number_input("Latitude", -90.0, 90.0, 43.6532, format="%.4f")
    lng = st.sidebar.number_input("Longitude", -180.0, 180.0, -79.3832, format="%.4f")

    request = {"lat": lat, "lng": lng, "region": region}
    request.update(roof_inputs())
    request["shading"] = st.sidebar.selectbox("Shading", list(SHADING_FACTORS))
    request["roof_pitch"] = st.sidebar.selectbox("Roof pitch", ["flat", "low", "medium", "steep"], index=2)
    request["panel"] = st.sidebar.selectbox(
        "Panel", list(PANEL_OPTIONS), format_func=lambda key: PANEL_OPTIONS[key]["model"])
    request.update(usage_inputs())

    st.sidebar.header("Rate Plan & Battery")
    if region == "AB":
        st.sidebar.info("Alberta homes are settled under the Solar Club program")
    else:
        request["rate_plan"] = st.sidebar.selectbox(
            "Rate plan", list(RATE_PLANS), format_func=lambda plan_id: RATE_PLANS[plan_id].name)
    battery_choice = st.sidebar.selectbox(
        "Battery", ["none"] + list(BATTERY_OPTIONS),
        format_func=lambda key: "No battery" if key == "none" else
        f"{BATTERY_OPTIONS[key]['brand']} {BATTERY_OPTIONS[key]['model']} (${BATTERY_OPTIONS[key]['price']:,})")
    if battery_choice != "none":
        request["battery"] = battery_choice
        request["ai_mode"] = st.sidebar.checkbox("AI mode (discharge at peak prices)", value=False)

    st.sidebar.header("Financing")
    if st.sidebar.checkbox("Finance with a loan", value=False):
        request["finance"] = {
            "finance_mode": True,
            "deposit_pct": st.sidebar.slider("Deposit (%)", 0, 50, 10, 5),
            "loan_term": st.sidebar.slider("Loan term (years)", 5, 20, 10),
            "loan_rate": st.sidebar.slider("Interest rate (%)", 0.0, 12.0, 5.0, 0.5),
        }

    try:
        response = estimate(request)
    except EstimatorError as err:
        st.error(f"Could not compute an estimate: {err}")
        response = None

    if response and response["status"] == ROOF_TOO_SMALL:
        st.warning(response["message"])
    elif response:
        show_estimate(response)

        if battery_choice != "none" and region != "AB":
            plan = get_rate_plan(request.get("rate_plan"))
            if plan.time_windowed:
                with st.expander("Simplified peak shaving comparison"):
                    shaving = calculate_peak_shaving(
                        request["annual_kwh"], response["production"]["annual_production_kwh"],
                        plan, get_battery_spec(battery_choice), ai_mode=request.get("ai_mode", False))
                    df_periods = pd.DataFrame({
                        "Period": list(shaving.usage_by_period),
                        "Usage": list(shaving.usage_by_period.values()),
                        "Solar": list(shaving.solar_offset_by_period.values()),
                        "Battery": list(shaving.battery_offset_by_period.values()),
                        "Grid": list(shaving.grid_by_period.values()),
                    })
                    st.dataframe(df_periods.round(0), hide_index=True, use_container_width=True)
                    st.metric("Annual savings (period model)", f"${shaving.annual_savings:,.0f}")

        st.header("Export")
        customer_name = st.text_input("Customer name", "")
        customer_address = st.text_input("Address", "")
        if st.button("Generate Estimate PDF", type="primary"):
            with st.spinner("Generating PDF..."):
                pdf_bytes = generate_estimate_pdf(response, customer_name or None, customer_address or None)
            st.download_button(
                label="Download estimate",
                data=pdf_bytes,
                file_name="solar_estimate.pdf",
                mime="application/pdf",
            )

with tab_commercial:
    st.header("Commercial Demand Charge Savings")
    col_in1, col_in2, col_in3 = st.columns(3)
    with col_in1:
        shave_kw = st.number_input("Demand to shave (kW)", 1.0, 5000.0, 100.0, 5.0)
        duration = st.number_input("Peak duration (minutes)", 5, 480, 60, 5)
        demand_rate = st.number_input("Demand charge ($/kW-month)", 0.0, 100.0, 12.0, 0.5)
    with col_in2:
        c_rate = st.slider("Battery C-rate", 0.1, 2.0, 0.5, 0.1)
        efficiency = st.slider("Round-trip efficiency", 0.5, 1.0, 0.9, 0.01)
        dod = st.slider("Usable depth of discharge", 0.5, 1.0, 0.9, 0.01)
    with col_in3:
        installed_cost = st.number_input("Installed cost ($)", 0.0, 10000000.0, 250000.0, 5000.0)
        solar_ac_kw = st.number_input("Eligible solar AC (kW)", 0.0, 2000.0, 0.0, 5.0)

    try:
        commercial = calculate_commercial(
            shave_kw, duration, c_rate, efficiency, dod, demand_rate,
            installed_cost=installed_cost, solar_ac_kw=solar_ac_kw)
    except EstimatorError as err:
        st.error(str(err))
        commercial = None

    if commercial:
        col_r1, col_r2, col_r3, col_r4 = st.columns(4)
        with col_r1:
            st.metric("Battery Size", f"{commercial.sizing.nameplate_kwh:,.1f} kWh")
            st.caption(commercial.sizing.sizing_type)
        with col_r2:
            st.metric("Inverter", f"{commercial.sizing.inverter_kw:,.0f} kW")
        with col_r3:
            st.metric("Annual Savings", f"${commercial.annual_savings:,.0f}")
        with col_r4:
            st.metric("Payback", f"{commercial.payback_years:.1f} years")

        df_projection = pd.DataFrame(commercial.projection)
        fig_c = px.bar(df_projection, x="year", y="cumulative",
                       labels={"year": "Year", "cumulative": "Cumulative savings ($)"})
        fig_c.update_layout(height=400)
        st.plotly_chart(fig_c, use_container_width=True)

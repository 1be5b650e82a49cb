"""PDF export of a solar estimate."""

import math
from datetime import datetime
from io import BytesIO

from reportlab.graphics.charts.barcharts import VerticalBarChart
from reportlab.graphics.charts.lineplots import LinePlot
from reportlab.graphics.shapes import Drawing, Line, Rect, String
from reportlab.graphics.widgets.markers import makeMarker
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from constants import MONTH_NAMES, PAYBACK_CAP_YEARS
from errors import ValidationError

BRAND_BLUE = '#2E86AB'
LABEL_TABLE_STYLE = [
    ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
    ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#f5f5f5')),
    ('BOX', (0, 0), (-1, -1), 0.5, colors.grey),
    ('INNERGRID', (0, 0), (-1, -1), 0.25, colors.grey),
    ('PADDING', (0, 0), (-1, -1), 6),
]


def create_cashflow_chart(cumulative_cashflow: list, payback_years: float) -> Drawing:
    """Cumulative cashflow line with the break-even year marked."""

    drawing = Drawing(170*mm, 80*mm)
    years = len(cumulative_cashflow)

    chart = LinePlot()
    chart.x = 15*mm
    chart.y = 15*mm
    chart.width = 145*mm
    chart.height = 55*mm
    chart.data = [[(year + 1, value) for year, value in enumerate(cumulative_cashflow)]]

    chart.lines[0].strokeColor = colors.HexColor(BRAND_BLUE)
    chart.lines[0].strokeWidth = 2
    chart.lines[0].symbol = makeMarker('Circle', size=3)

    chart.xValueAxis.valueMin = 0
    chart.xValueAxis.valueMax = years
    chart.xValueAxis.valueStep = 5
    chart.xValueAxis.labels.fontSize = 8

    low = min(cumulative_cashflow)
    high = max(cumulative_cashflow)
    chart.yValueAxis.valueMin = low - abs(low) * 0.1
    chart.yValueAxis.valueMax = high + abs(high) * 0.1
    if chart.yValueAxis.valueMax <= chart.yValueAxis.valueMin:
        chart.yValueAxis.valueMax = chart.yValueAxis.valueMin + 1
    chart.yValueAxis.labels.fontSize = 8
    chart.yValueAxis.labelTextFormat = '$%d'
    drawing.add(chart)

    span = chart.yValueAxis.valueMax - chart.yValueAxis.valueMin
    zero_y = chart.y + chart.height * (0 - chart.yValueAxis.valueMin) / span
    if chart.y <= zero_y <= chart.y + chart.height:
        zero_line = Line(chart.x, zero_y, chart.x + chart.width, zero_y)
        zero_line.strokeColor = colors.grey
        zero_line.strokeDashArray = [3, 3]
        drawing.add(zero_line)

    if payback_years and payback_years < PAYBACK_CAP_YEARS and payback_years <= years:
        breakeven_year = max(1, int(math.ceil(payback_years)))
        x = chart.x + chart.width * (payback_years / years)
        value = cumulative_cashflow[breakeven_year - 1]
        y = chart.y + chart.height * (value - chart.yValueAxis.valueMin) / span

        line = Line(x, chart.y, x, y)
        line.strokeColor = colors.HexColor('#4CAF50')
        line.strokeWidth = 1.5
        line.strokeDashArray = [2, 2]
        drawing.add(line)

        marker = Rect(x - 3, y - 3, 6, 6)
        marker.fillColor = colors.HexColor('#4CAF50')
        marker.strokeColor = colors.white
        drawing.add(marker)

        label = String(x + 3, y + 5, f'Break-even: {payback_years:.1f} years')
        label.fontSize = 8
        label.fillColor = colors.HexColor('#4CAF50')
        label.fontName = 'Helvetica-Bold'
        drawing.add(label)

    title = String(chart.x + chart.width / 2, chart.y + chart.height + 8*mm, 'Cumulative Savings Over Time')
    title.fontSize = 10
    title.fontName = 'Helvetica-Bold'
    title.textAnchor = 'middle'
    drawing.add(title)

    x_label = String(chart.x + chart.width / 2, 3*mm, 'Year')
    x_label.fontSize = 8
    x_label.textAnchor = 'middle'
    drawing.add(x_label)

    return drawing


def create_energy_flow_chart(months: list) -> Drawing:
    """Annual solar used on site, from the battery, exported, and bought from the grid."""

    drawing = Drawing(170*mm, 70*mm)

    chart = VerticalBarChart()
    chart.x = 20*mm
    chart.y = 12*mm
    chart.width = 130*mm
    chart.height = 45*mm

    chart.data = [[
        sum(m["self_consumed_kwh"] for m in months),
        sum(m["battery_discharge_kwh"] for m in months),
        sum(m["exported_kwh"] for m in months),
        sum(m["imported_kwh"] for m in months),
    ]]
    chart.categoryAxis.categoryNames = ['Direct\nUse', 'Battery', 'Export', 'Grid\nSupply']
    chart.categoryAxis.labels.fontSize = 7
    chart.categoryAxis.labels.dy = -5
    chart.valueAxis.valueMin = 0
    chart.valueAxis.labels.fontSize = 8
    chart.valueAxis.labelTextFormat = '%d kWh'

    for i, color in enumerate(['#4ECDC4', '#9B59B6', '#FFD93D', '#E74C3C']):
        chart.bars[(0, i)].fillColor = colors.HexColor(color)
    drawing.add(chart)

    title = String(chart.x + chart.width / 2, chart.y + chart.height + 8*mm, 'Annual Energy Flow')
    title.fontSize = 10
    title.fontName = 'Helvetica-Bold'
    title.textAnchor = 'middle'
    drawing.add(title)

    return drawing


def create_monthly_chart(months: list) -> Drawing:
    """Monthly generation against consumption."""

    drawing = Drawing(170*mm, 70*mm)

    chart = LinePlot()
    chart.x = 15*mm
    chart.y = 12*mm
    chart.width = 145*mm
    chart.height = 45*mm
    chart.data = [
        [(i, m["generation_kwh"]) for i, m in enumerate(months)],
        [(i, m["consumption_kwh"]) for i, m in enumerate(months)],
    ]

    for line, color, symbol in ((0, '#FFD93D', 'Circle'), (1, '#6BCB77', 'Square')):
        chart.lines[line].strokeColor = colors.HexColor(color)
        chart.lines[line].strokeWidth = 2
        chart.lines[line].symbol = makeMarker(symbol, size=3)
        chart.lines[line].symbol.fillColor = colors.HexColor(color)

    chart.xValueAxis.valueMin = 0
    chart.xValueAxis.valueMax = 11
    chart.xValueAxis.valueStep = 1
    chart.xValueAxis.labels.fontSize = 7
    chart.xValueAxis.labelTextFormat = lambda x: MONTH_NAMES[int(x)] if 0 <= x < 12 else ''
    chart.yValueAxis.valueMin = 0
    chart.yValueAxis.labels.fontSize = 8
    chart.yValueAxis.labelTextFormat = '%d'
    drawing.add(chart)

    title = String(chart.x + chart.width / 2, chart.y + chart.height + 8*mm, 'Monthly Generation vs Consumption (kWh)')
    title.fontSize = 10
    title.fontName = 'Helvetica-Bold'
    title.textAnchor = 'middle'
    drawing.add(title)

    legend_y = 3*mm
    for offset, color, text in ((30*mm, '#FFD93D', 'Solar Generation'), (80*mm, '#6BCB77', 'Consumption')):
        marker = Rect(chart.x + offset, legend_y, 8, 8)
        marker.fillColor = colors.HexColor(color)
        drawing.add(marker)
        label = String(chart.x + offset + 10*mm, legend_y + 1, text)
        label.fontSize = 7
        drawing.add(label)

    return drawing


def _label_table(rows: list, style=None) -> Table:
    table = Table(rows, colWidths=[60*mm, 110*mm])
    table.setStyle(TableStyle(style or LABEL_TABLE_STYLE))
    return table


def generate_estimate_pdf(
    response: dict,
    customer_name: str = None,
    customer_address: str = None,
    company_name: str = "Solar Estimates",
    quote_ref: str = None
) -> bytes:
    """Render an ``estimator.estimate`` response as a PDF.

    Returns PDF as bytes.
    """
    if response.get("status") != "ok":
        raise ValidationError("Only completed estimates can be exported", field="status")

    roof = response["roof"]
    production = response["production"]
    costs = response["costs"]
    savings = response["savings"]
    projection = response["projection"]

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=20*mm,
        leftMargin=20*mm,
        topMargin=20*mm,
        bottomMargin=20*mm
    )

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='CompanyName',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor(BRAND_BLUE),
        spaceAfter=5*mm
    ))
    styles.add(ParagraphStyle(
        name='QuoteTitle',
        parent=styles['Heading1'],
        fontSize=18,
        alignment=TA_CENTER,
        spaceBefore=5*mm,
        spaceAfter=10*mm
    ))
    styles.add(ParagraphStyle(
        name='SectionHeader',
        parent=styles['Heading2'],
        fontSize=14,
        textColor=colors.HexColor(BRAND_BLUE),
        spaceBefore=8*mm,
        spaceAfter=4*mm
    ))
    styles.add(ParagraphStyle(name='BodyTextRight', parent=styles['Normal'], alignment=TA_RIGHT))
    styles.add(ParagraphStyle(
        name='Footer',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.grey,
        alignment=TA_CENTER
    ))

    now = datetime.now()
    if quote_ref is None:
        quote_ref = f"E-{now.strftime('%Y%m%d-%H%M%S')}"

    elements = []
    header = Table([[
        Paragraph(f"<b>{company_name}</b>", styles['CompanyName']),
        Paragraph(f"Estimate Ref: {quote_ref}<br/>Date: {now.strftime('%B %d, %Y')}", styles['BodyTextRight']),
    ]], colWidths=[100*mm, 70*mm])
    header.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
    elements.append(header)
    elements.append(Spacer(1, 5*mm))
    elements.append(Paragraph("Solar Savings Estimate", styles['QuoteTitle']))

    if customer_name or customer_address:
        elements.append(_label_table([
            ["Customer:", customer_name or ""],
            ["Address:", customer_address or ""],
        ], [('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'), ('VALIGN', (0, 0), (-1, -1), 'TOP')]))

    # --- System ---
    elements.append(Paragraph("Your System", styles['SectionHeader']))
    system_rows = [
        ["Panels:", f"{roof['panel_count']}"],
        ["System Size:", f"{roof['system_kw']:.2f} kW"],
        ["Panel Azimuth:", f"{roof['azimuth']:.0f}°"],
        ["Battery:", response.get("battery") or "Not included"],
        ["Annual Production:", f"{production['annual_production_kwh']:,} kWh"],
        ["Production Range:", "{:,} - {:,} kWh".format(*production['range_kwh'])],
        ["Estimate Source:", "PVWatts" if production['source'] == 'pvwatts' else "Regional average"],
    ]
    elements.append(_label_table(system_rows))

    # --- Investment ---
    elements.append(Paragraph("Investment", styles['SectionHeader']))
    pricing_rows = [["Solar System:", f"${costs['solar_cost']:,}"], ["Tax:", f"${costs['tax']:,}"]]
    if costs['battery_cost']:
        pricing_rows.append(["Battery:", f"${costs['battery_cost']:,}"])
    pricing_rows.append(["Incentives:", f"-${costs['incentives']:,}"])
    pricing_rows.append(["Net Cost:", f"${costs['net_cost']:,}"])
    elements.append(_label_table(pricing_rows, [
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 12),
        ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor(BRAND_BLUE)),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.white),
        ('BOX', (0, 0), (-1, -1), 0.5, colors.grey),
        ('INNERGRID', (0, 0), (-1, -2), 0.25, colors.grey),
        ('PADDING', (0, 0), (-1, -1), 6),
    ]))

    # --- Savings ---
    elements.append(Paragraph("Projected Savings", styles['SectionHeader']))
    payback = savings['payback_years']
    savings_rows = [
        ["Rate Plan:", savings['plan']],
        ["Year 1 Savings:", f"${savings['annual_savings']:,}"],
        ["Bill Offset:", f"{savings['bill_offset_percent']}%"],
        ["Energy Offset:", f"{savings['energy_offset_percent']}%"],
        ["Payback Period:", f"{payback} years" if payback < PAYBACK_CAP_YEARS else f"{PAYBACK_CAP_YEARS:.0f}+ years"],
        ["25-Year Savings:", f"${projection['total_savings']:,}"],
    ]
    elements.append(_label_table(savings_rows, [
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#e8f5e9')),
        ('BOX', (0, 0), (-1, -1), 0.5, colors.HexColor('#4CAF50')),
        ('INNERGRID', (0, 0), (-1, -1), 0.25, colors.HexColor('#4CAF50')),
        ('PADDING', (0, 0), (-1, -1), 6),
    ]))

    program = response.get("program")
    if program:
        elements.append(Paragraph("Solar Club Program", styles['SectionHeader']))
        high = program['seasons']['high_production']
        low = program['seasons']['low_production']
        elements.append(_label_table([
            ["Summer Export Credits:", f"${high['export_credits']:,}"],
            ["Winter Export Credits:", f"${low['export_credits']:,}"],
            ["Cash Back:", f"${program['cash_back']:,}"],
            ["Carbon Credits (est.):", f"${program['estimated_carbon_credits']:,}"],
        ]))

    # --- Charts ---
    elements.append(PageBreak())
    elements.append(Paragraph("Financial Projection", styles['SectionHeader']))
    elements.append(create_cashflow_chart(projection['cumulative_cashflow'], projection['payback_years']))
    elements.append(Spacer(1, 8*mm))

    elements.append(Paragraph("Energy Distribution", styles['SectionHeader']))
    elements.append(create_energy_flow_chart(savings['months']))
    elements.append(Spacer(1, 8*mm))

    elements.append(Paragraph("Seasonal Performance", styles['SectionHeader']))
    elements.append(create_monthly_chart(savings['months']))

    warnings = response.get("warnings") or []
    if warnings:
        elements.append(Paragraph("Notes", styles['SectionHeader']))
        elements.append(Paragraph("<br/>".join(f"- {w}" for w in warnings), styles['Normal']))

    elements.append(Spacer(1, 10*mm))
    elements.append(Paragraph(
        "<font size=9>Estimates assume current electricity rates rising 5% per year. Actual savings depend "
        "on weather, usage patterns and future prices.</font>",
        styles['Normal']
    ))
    elements.append(Spacer(1, 15*mm))
    elements.append(Paragraph(
        f"{company_name} | Estimate generated on {now.strftime('%Y-%m-%d at %H:%M')}",
        styles['Footer']
    ))

    doc.build(elements)
    return buffer.getvalue()

"""
Export Documents
================

PDF and spreadsheet renderings of an export dataset. CSV lives in
``export_service``; these two need a binary writer.
"""

import io
import logging
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

SECTIONS = ("payments", "earnings", "commissions")

# PDF tables are capped; the spreadsheet carries every row
PDF_ROW_LIMIT = 100

SECTION_COLUMNS = {
    "payments": ["date", "transactionId", "amount", "currency", "status", "type", "captainName"],
    "earnings": ["date", "totalRevenue", "commission", "fees", "netEarnings", "transactionCount"],
    "commissions": ["date", "captainName", "totalAmount", "commissionAmount", "transactionCount"],
}
SUMMARY_LABELS = [
    ("totalRecords", "Records"),
    ("totalAmount", "Total amount"),
    ("averageAmount", "Average amount"),
    ("totalFees", "Estimated fees"),
    ("totalCommission", "Commission"),
]

BRAND_COLOR = colors.HexColor("#0B5394")
HEADER_FILL = PatternFill(start_color="0B5394", end_color="0B5394", fill_type="solid")


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return str(value)
    return value


def render_pdf(dataset: dict[str, Any], data_type: str) -> bytes:
    """Summary table followed by one table per dataset section."""
    summary = dataset["summary"]
    date_range = f"{summary['dateRange']['start'][:10]} - {summary['dateRange']['end'][:10]}"

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=f"{data_type.capitalize()} Report",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ExportTitle",
        parent=styles["Heading1"],
        fontSize=20,
        textColor=BRAND_COLOR,
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        "ExportHeading",
        parent=styles["Heading2"],
        fontSize=13,
        spaceBefore=14,
        spaceAfter=6,
    )

    story = [
        Paragraph(f"{data_type.upper()} REPORT", title_style),
        Paragraph(date_range, styles["Normal"]),
        Spacer(1, 0.25 * inch),
    ]

    summary_table = Table(
        [[label, str(summary[key])] for key, label in SUMMARY_LABELS],
        colWidths=[2 * inch, 2 * inch],
    )
    summary_table.setStyle(TableStyle([
        ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 10),
        ("FONT", (1, 0), (1, -1), "Helvetica", 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    story.append(summary_table)

    for section in SECTIONS:
        if section not in dataset:
            continue
        columns = SECTION_COLUMNS[section]
        rows = dataset[section][:PDF_ROW_LIMIT]

        story.append(Paragraph(section.capitalize(), heading_style))
        table = Table(
            [columns] + [[str(_cell(row.get(c))) for c in columns] for row in rows],
            repeatRows=1,
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 8),
            ("FONT", (0, 1), (-1, -1), "Helvetica", 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
        ]))
        story.append(table)
        if len(dataset[section]) > PDF_ROW_LIMIT:
            story.append(Paragraph(
                f"Showing first {PDF_ROW_LIMIT} of {len(dataset[section])} rows",
                styles["Italic"],
            ))

    doc.build(story)
    pdf_bytes = buffer.getvalue()
    buffer.close()

    logger.debug("Rendered %s PDF export (%d bytes)", data_type, len(pdf_bytes))
    return pdf_bytes


def _write_sheet(sheet, rows: list[dict[str, Any]], columns: list[str]) -> None:
    sheet.append(columns)
    for cell in sheet[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = HEADER_FILL
    for row in rows:
        sheet.append([_cell(row.get(c)) for c in columns])
    for index, column in enumerate(columns, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(12, len(column) + 2)
    sheet.freeze_panes = "A2"


def render_xlsx(dataset: dict[str, Any]) -> bytes:
    """One worksheet per section plus a Summary sheet."""
    workbook = Workbook()
    summary_sheet = workbook.active
    summary_sheet.title = "Summary"
    summary = dataset["summary"]
    summary_sheet.append(["Metric", "Value"])
    summary_sheet["A1"].font = Font(bold=True)
    summary_sheet["B1"].font = Font(bold=True)
    summary_sheet.append(["Start", summary["dateRange"]["start"]])
    summary_sheet.append(["End", summary["dateRange"]["end"]])
    for key, label in SUMMARY_LABELS:
        summary_sheet.append([label, summary[key]])

    for section in SECTIONS:
        if section in dataset:
            _write_sheet(workbook.create_sheet(section.capitalize()), dataset[section], SECTION_COLUMNS[section])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()

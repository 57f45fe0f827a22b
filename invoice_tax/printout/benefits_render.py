from __future__ import annotations

import re
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from invoice_tax.config import get_settings
from invoice_tax.reports.benefits import BenefitReport, BenefitTotals
from invoice_tax.settings_store import CompanySettings


PAGE_WIDTH, PAGE_HEIGHT = A4
LEFT_MARGIN = 48
RIGHT_MARGIN = PAGE_WIDTH - LEFT_MARGIN
TOP = PAGE_HEIGHT - 72
BOTTOM_MARGIN = 72
LINE_HEIGHT = 14

HEADER_FONT = "Helvetica-Bold"
BODY_FONT = "Helvetica"
SMALL_FONT = "Helvetica"

# (label, x position, right aligned)
ROW_COLUMNS = (
    ("Number", LEFT_MARGIN, False),
    ("Date", LEFT_MARGIN + 90, False),
    ("Seller", LEFT_MARGIN + 150, False),
    ("Gross", LEFT_MARGIN + 330, True),
    ("Tax benefit", LEFT_MARGIN + 415, True),
    ("Real cost", RIGHT_MARGIN, True),
)

TOTAL_ROWS = (
    ("gross_amount", "Gross amount"),
    ("vat_recovered", "VAT recovered"),
    ("income_tax_saving", "Income tax saving"),
    ("health_saving", "Health contribution saving"),
    ("total_tax_benefit", "Total tax benefit"),
    ("real_cost", "Real cost"),
)


def format_amount(value: float | None, currency: str = "") -> str:
    if value is None:
        return ""
    text = f"{value:,.2f}".replace(",", " ")
    return f"{text} {currency}".strip()


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _sanitize_segment(value: str) -> str:
    segment = re.sub(r"[^A-Za-z0-9]+", "-", value.strip().lower())
    return segment.strip("-") or "all"


def _resolve_output_path(out_path: str, report: BenefitReport) -> Path:
    requested = Path(out_path)
    artifact_root = Path(get_settings().artifact_root)
    if not artifact_root.is_absolute():
        artifact_root = Path.cwd() / artifact_root

    if requested.suffix.lower() == ".pdf":
        final_path = requested if requested.is_absolute() else artifact_root / requested
    else:
        base_dir = requested if requested.is_absolute() else artifact_root / requested
        final_path = base_dir / f"tax_benefits_{_sanitize_segment(report.period_label)}.pdf"

    final_path.parent.mkdir(parents=True, exist_ok=True)
    return final_path


def _set_metadata(pdf: canvas.Canvas, report: BenefitReport, company: CompanySettings | None) -> None:
    owner = company.name if company and company.name else "Company"
    pdf.setTitle(f"Tax benefits - {owner} ({report.period_label})")
    pdf.setSubject("Tax benefit of purchase invoices")
    if company and company.name:
        pdf.setAuthor(company.name)
    pdf.setCreator("invoice-tax-benefits")


def _draw_header(pdf: canvas.Canvas, report: BenefitReport, company: CompanySettings | None) -> float:
    pdf.setFont(HEADER_FONT, 16)
    pdf.drawString(LEFT_MARGIN, TOP, f"Tax benefits - {report.period_label}")
    y = TOP - 20
    if company is not None:
        pdf.setFont(BODY_FONT, 10)
        if company.name:
            pdf.drawString(LEFT_MARGIN, y, company.name)
            y -= LINE_HEIGHT
        if company.nip:
            pdf.drawString(LEFT_MARGIN, y, f"NIP {company.nip}")
            y -= LINE_HEIGHT
        pdf.setFont(SMALL_FONT, 9)
        vat_label = "VAT payer" if company.is_vat_payer else "Not a VAT payer"
        pdf.drawString(
            LEFT_MARGIN,
            y,
            f"PIT {company.pit_rate:.0%}  Health {company.health_rate:.2%}  {vat_label}",
        )
        y -= LINE_HEIGHT
    return y - LINE_HEIGHT


def _draw_column_titles(pdf: canvas.Canvas, y: float) -> float:
    pdf.setFont(HEADER_FONT, 9)
    for label, x, right in ROW_COLUMNS:
        if right:
            pdf.drawRightString(x, y, label)
        else:
            pdf.drawString(x, y, label)
    pdf.line(LEFT_MARGIN, y - 4, RIGHT_MARGIN, y - 4)
    return y - LINE_HEIGHT - 2


def _draw_rows(pdf: canvas.Canvas, report: BenefitReport, y: float) -> float:
    y = _draw_column_titles(pdf, y)
    for row in report.rows:
        if y < BOTTOM_MARGIN:
            _draw_page_number(pdf)
            pdf.showPage()
            y = _draw_column_titles(pdf, TOP)
        invoice = row.invoice
        values = (
            _truncate(invoice.number, 16),
            invoice.issue_date.strftime("%Y-%m-%d"),
            _truncate(invoice.seller_name, 30),
            format_amount(invoice.gross_amount),
            format_amount(row.result.total_tax_benefit),
            format_amount(row.result.real_cost),
        )
        pdf.setFont(BODY_FONT, 9)
        for (_, x, right), text in zip(ROW_COLUMNS, values):
            if right:
                pdf.drawRightString(x, y, text)
            else:
                pdf.drawString(x, y, text)
        y -= LINE_HEIGHT
    return y


def _draw_totals(pdf: canvas.Canvas, currency: str, totals: BenefitTotals, y: float) -> float:
    if y < BOTTOM_MARGIN + LINE_HEIGHT * (len(TOTAL_ROWS) + 2):
        _draw_page_number(pdf)
        pdf.showPage()
        y = TOP
    pdf.setFont(HEADER_FONT, 11)
    pdf.drawString(LEFT_MARGIN, y, f"Totals ({currency}, {totals.count} invoices)")
    y -= LINE_HEIGHT
    pdf.setFont(BODY_FONT, 10)
    for key, label in TOTAL_ROWS:
        pdf.drawString(LEFT_MARGIN, y, label)
        pdf.drawRightString(RIGHT_MARGIN, y, format_amount(getattr(totals, key), currency))
        y -= LINE_HEIGHT
    return y - LINE_HEIGHT


def _draw_page_number(pdf: canvas.Canvas) -> None:
    pdf.setFont(SMALL_FONT, 9)
    pdf.drawRightString(RIGHT_MARGIN, 36, f"Page {pdf.getPageNumber()}")


def render_benefit_report_pdf(
    out_path: str,
    report: BenefitReport,
    company: CompanySettings | None = None,
) -> str:
    """Render the tax benefit report and return the filesystem path."""

    output_path = _resolve_output_path(out_path, report)
    pdf = canvas.Canvas(str(output_path), pagesize=A4)

    _set_metadata(pdf, report, company)
    y = _draw_header(pdf, report, company)
    if report.rows:
        y = _draw_rows(pdf, report, y) - LINE_HEIGHT
    else:
        pdf.setFont(BODY_FONT, 10)
        pdf.drawString(LEFT_MARGIN, y, "No purchase invoices in this period.")
        y -= LINE_HEIGHT * 2
    for currency, totals in sorted(report.totals.items()):
        y = _draw_totals(pdf, currency, totals, y)

    _draw_page_number(pdf)
    pdf.showPage()
    pdf.save()
    return str(output_path)

"""BFKO Excel and PDF exports."""

from __future__ import annotations

import datetime as dt
from collections import OrderedDict
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .analytics import _sum, sort_for_excel, sort_for_pdf
from .reports import format_rupiah

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIMETYPE = "application/pdf"

EXCEL_HEADERS = ["No", "Nama", "NIP", "Jabatan", "Unit", "Bulan", "Tahun", "Nilai Angsuran", "Tanggal Bayar", "Status"]
EXCEL_WIDTHS = [6, 30, 18, 28, 20, 12, 8, 18, 16, 14]


def year_text(year: Optional[int]) -> str:
    return "Semua Tahun" if year is None else f"Tahun {year}"


def export_filename(year: Optional[int], extension: str, now: Optional[dt.datetime] = None) -> str:
    now = now or dt.datetime.now()
    label = "All_Years" if year is None else str(year)
    return f"BFKO_Report_{label}_{now.strftime('%Y%m%d_%H%M%S')}.{extension}"


def bfko_workbook(records: Sequence[Any], year: Optional[int]) -> bytes:
    """One row per payment ordered by name, newest year, then month."""

    wb = Workbook()
    ws = wb.active
    ws.title = "BFKO"

    ws.cell(row=1, column=1, value=f"Laporan BFKO - {year_text(year)}").font = Font(bold=True, size=14)

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="1F4E78")
    for col, header in enumerate(EXCEL_HEADERS, 1):
        cell = ws.cell(row=3, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    ordered = sort_for_excel(records)
    row = 3
    for number, record in enumerate(ordered, 1):
        row += 1
        amount = float(record.nilai_angsuran or 0)
        values = [
            number,
            record.nama,
            record.nip,
            record.jabatan,
            record.unit or "",
            record.bulan,
            record.tahun,
            amount,
            record.tanggal_bayar or "",
            record.status_angsuran or "",
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=row, column=col, value=value)
        ws.cell(row=row, column=8).number_format = "#,##0"

    row += 1
    ws.cell(row=row, column=7, value="Total").font = Font(bold=True)
    total_cell = ws.cell(row=row, column=8, value=float(_sum(r.nilai_angsuran for r in ordered)))
    total_cell.font = Font(bold=True)
    total_cell.number_format = "#,##0"

    for col, width in enumerate(EXCEL_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    output = BytesIO()
    wb.save(output)
    return output.getvalue()


def _group_by_employee(records: Sequence[Any]) -> List[Dict[str, Any]]:
    groups: "OrderedDict[str, List[Any]]" = OrderedDict()
    for record in sorted(records, key=lambda r: (r.nama or "").lower()):
        groups.setdefault(record.nip, []).append(record)
    employees = []
    for nip, payments in groups.items():
        first = payments[0]
        employees.append(
            {
                "nip": nip,
                "nama": first.nama,
                "jabatan": first.jabatan,
                "unit": first.unit,
                "payments": sort_for_pdf(payments),
                "total": _sum(p.nilai_angsuran for p in payments),
            }
        )
    return employees


def bfko_pdf(records: Sequence[Any], year: Optional[int], now: Optional[dt.datetime] = None) -> bytes:
    """Landscape A4 report with one table per employee and a grand total."""

    now = now or dt.datetime.now()
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=landscape(A4),
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
    )
    styles = getSampleStyleSheet()
    story: list = [
        Paragraph(f"Laporan BFKO - {year_text(year)}", styles["Title"]),
        Paragraph(f"Tanggal export: {now.strftime('%d-%m-%Y %H:%M')}", styles["Normal"]),
        Spacer(0, 8),
    ]

    table_style = TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f4e78")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#d9d9d9")),
            ("ALIGN", (-1, 1), (-1, -1), "RIGHT"),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.HexColor("#f5f5f5")]),
        ]
    )

    employees = _group_by_employee(records)
    for employee in employees:
        heading = f"<b>{escape(employee['nama'] or '')}</b> ({escape(employee['nip'])}) - {escape(employee['jabatan'] or '-')}"
        if employee["unit"]:
            heading += f", {escape(employee['unit'])}"
        story.append(Paragraph(heading, styles["Normal"]))
        data = [["Bulan", "Tahun", "Tanggal Bayar", "Status", "Nilai Angsuran"]]
        for payment in employee["payments"]:
            data.append(
                [
                    payment.bulan,
                    str(payment.tahun),
                    payment.tanggal_bayar or "-",
                    payment.status_angsuran or "-",
                    format_rupiah(payment.nilai_angsuran),
                ]
            )
        data.append(["", "", "", "Total", format_rupiah(employee["total"])])
        table = Table(data, colWidths=[35 * mm, 20 * mm, 40 * mm, 35 * mm, 45 * mm], repeatRows=1)
        table.setStyle(table_style)
        story.append(table)
        story.append(Spacer(0, 8))

    grand_total = _sum(e["total"] for e in employees)
    story.append(Paragraph(f"<b>Total keseluruhan: {format_rupiah(grand_total)}</b>", styles["Normal"]))
    doc.build(story)
    return buf.getvalue()

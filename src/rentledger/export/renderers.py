"""Renderers that turn a ReportPayload into file bytes."""

import csv
import io
import re
import zipfile
from datetime import datetime, timezone
from typing import Protocol
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from rentledger.config import get_settings
from rentledger.export.payloads import ReportPayload, ReportSection

SUMMARY_COLUMNS = ("Item", "Value")

# Characters Excel rejects in sheet titles
_SHEET_TITLE_FORBIDDEN = str.maketrans({c: " " for c in "\\/?*[]:"})

_CORE_MODIFIED = re.compile(rb"(<dcterms:modified[^>]*>)[^<]*(</dcterms:modified>)")


def generated_label(generated_at: datetime) -> str:
    return f"Generated: {generated_at.isoformat(timespec='seconds')}"


def _summary_section(payload: ReportPayload) -> ReportSection:
    return ReportSection(title="Summary", columns=SUMMARY_COLUMNS, rows=payload.summary)


class Renderer(Protocol):
    extension: str

    def render(self, payload: ReportPayload, generated_at: datetime) -> bytes: ...


class CsvRenderer:
    """RFC 4180 CSV: title, timestamp, blank line, then one block per section."""

    extension = "csv"

    def render(self, payload: ReportPayload, generated_at: datetime) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")

        writer.writerow([payload.title])
        writer.writerow([generated_label(generated_at)])
        writer.writerow([])
        if payload.period_label:
            writer.writerow([payload.period_label])
            writer.writerow([])

        for section in (_summary_section(payload), *payload.sections):
            writer.writerow([section.title])
            writer.writerow(section.columns)
            writer.writerows(section.rows)
            writer.writerow([])

        return buffer.getvalue().encode("utf-8")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def _pin_archive(data: bytes, stamp: datetime) -> bytes:
    """Rewrite an xlsx archive so nothing in it depends on the wall clock.

    openpyxl stamps zip entries and ``dcterms:modified`` with the save time.
    """
    modified = stamp.isoformat(timespec="seconds").encode() + b"Z"
    output = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as source, zipfile.ZipFile(
        output, "w", zipfile.ZIP_DEFLATED
    ) as target:
        for item in source.infolist():
            content = source.read(item.filename)
            if item.filename == "docProps/core.xml":
                content = _CORE_MODIFIED.sub(
                    lambda m: m.group(1) + modified + m.group(2), content
                )
            info = zipfile.ZipInfo(item.filename, date_time=stamp.timetuple()[:6])
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = item.external_attr
            target.writestr(info, content)
    return output.getvalue()


class ExcelRenderer:
    """Single-sheet workbook with a bold title row and fixed column widths."""

    extension = "xlsx"

    def __init__(self, column_width: int | None = None):
        self._column_width = column_width or get_settings().export_column_width

    def render(self, payload: ReportPayload, generated_at: datetime) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = (payload.title.translate(_SHEET_TITLE_FORBIDDEN).strip() or "Report")[:31]
        wb.properties.created = _naive_utc(generated_at)

        ws.append([payload.title])
        ws.append([generated_label(generated_at)])
        ws.append([])
        ws["A1"].font = Font(bold=True, size=16)

        if payload.period_label:
            ws.append([payload.period_label])
            ws.append([])

        max_columns = 1
        for section in (_summary_section(payload), *payload.sections):
            ws.append([section.title])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
            ws.append(list(section.columns))
            for row in section.rows:
                ws.append(list(row))
            ws.append([])
            max_columns = max(max_columns, len(section.columns))

        for index in range(1, max_columns + 1):
            ws.column_dimensions[get_column_letter(index)].width = self._column_width

        buffer = io.BytesIO()
        wb.save(buffer)
        return _pin_archive(buffer.getvalue(), _naive_utc(generated_at))


class PdfRenderer:
    """Letter-size PDF built with reportlab platypus.

    Invariant mode pins the document id and creation date, so the same
    payload and timestamp always produce the same bytes.
    """

    extension = "pdf"

    def render(self, payload: ReportPayload, generated_at: datetime) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            topMargin=0.5 * inch,
            bottomMargin=0.5 * inch,
            title=payload.title,
            invariant=1,
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Heading1"],
            fontSize=20,
            textColor=colors.HexColor("#0f172a"),
        )
        meta_style = ParagraphStyle(
            "ReportMeta",
            parent=styles["Normal"],
            fontSize=10,
            textColor=colors.HexColor("#64748b"),
        )
        section_style = styles["Heading2"]

        elements = [
            Paragraph(escape(payload.title), title_style),
            Spacer(1, 6),
            Paragraph(escape(generated_label(generated_at)), meta_style),
        ]
        if payload.period_label:
            elements.append(Paragraph(escape(payload.period_label), meta_style))
        elements.append(Spacer(1, 20))

        for section in (_summary_section(payload), *payload.sections):
            elements.append(Paragraph(escape(section.title), section_style))
            elements.append(Spacer(1, 6))
            elements.append(self._table(section))
            elements.append(Spacer(1, 16))

        doc.build(elements)
        return buffer.getvalue()

    @staticmethod
    def _table(section: ReportSection) -> Table:
        data = [list(section.columns), *[list(row) for row in section.rows]]
        table = Table(data, hAlign="LEFT")
        table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#64748b")),
                    ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.HexColor("#e2e8f0")),
                    ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ]
            )
        )
        return table

"""Report payloads, renderers and artifact publishing."""

from rentledger.export.artifacts import ArtifactStore, LocalArtifactStore, StoredArtifact
from rentledger.export.exporter import ExportResult, ReportExporter, ReportFormat
from rentledger.export.payloads import (
    ReportPayload,
    ReportSection,
    balance_sheet_payload,
    cash_flow_payload,
    profit_loss_payload,
    reconciliation_payload,
    tax_form_payload,
)
from rentledger.export.renderers import CsvRenderer, ExcelRenderer, PdfRenderer

__all__ = [
    "ArtifactStore",
    "CsvRenderer",
    "ExcelRenderer",
    "ExportResult",
    "LocalArtifactStore",
    "PdfRenderer",
    "ReportExporter",
    "ReportFormat",
    "ReportPayload",
    "ReportSection",
    "StoredArtifact",
    "balance_sheet_payload",
    "cash_flow_payload",
    "profit_loss_payload",
    "reconciliation_payload",
    "tax_form_payload",
]

"""Report export to PDF, Excel and CSV artifacts."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from rentledger.errors import ExternalServiceError, RentLedgerError, ValidationError
from rentledger.export.artifacts import ArtifactStore, LocalArtifactStore
from rentledger.export.payloads import ReportPayload
from rentledger.export.renderers import CsvRenderer, ExcelRenderer, PdfRenderer, Renderer

logger = structlog.get_logger(__name__)


class ReportFormat(str, Enum):
    PDF = "PDF"
    EXCEL = "EXCEL"
    CSV = "CSV"


@dataclass(frozen=True)
class ExportResult:
    format: ReportFormat
    reference: str
    path: Path
    size: int
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format.value,
            "reference": self.reference,
            "path": str(self.path),
            "size": self.size,
            "generated_at": self.generated_at.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportExporter:
    """Renders payloads and publishes them through an artifact store."""

    def __init__(
        self,
        artifact_store: ArtifactStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
        renderers: dict[ReportFormat, Renderer] | None = None,
    ):
        self._store = artifact_store or LocalArtifactStore()
        self._clock = clock
        self._renderers: dict[ReportFormat, Renderer] = renderers or {
            ReportFormat.PDF: PdfRenderer(),
            ReportFormat.EXCEL: ExcelRenderer(),
            ReportFormat.CSV: CsvRenderer(),
        }
        self._logger = logger.bind(component="report_exporter")

    def export_pdf(self, payload: ReportPayload, file_name: str) -> ExportResult:
        return self.export(ReportFormat.PDF, payload, file_name)

    def export_excel(self, payload: ReportPayload, file_name: str) -> ExportResult:
        return self.export(ReportFormat.EXCEL, payload, file_name)

    def export_csv(self, payload: ReportPayload, file_name: str) -> ExportResult:
        return self.export(ReportFormat.CSV, payload, file_name)

    def export(
        self, report_format: ReportFormat | str, payload: ReportPayload, file_name: str
    ) -> ExportResult:
        """Render a payload and publish it as ``<file_name>.<ext>``.

        Raises:
            ValidationError: If the format or file name is invalid.
            ExternalServiceError: If rendering or publishing fails.
        """
        try:
            report_format = ReportFormat(report_format)
        except ValueError as e:
            raise ValidationError(
                "format must be PDF, EXCEL or CSV", details={"value": report_format}
            ) from e
        if not file_name or not isinstance(file_name, str) or Path(file_name).name != file_name:
            raise ValidationError(
                "file_name must be a plain file name", details={"value": repr(file_name)}
            )

        renderer = self._renderers[report_format]
        generated_at = self._clock()
        self._logger.info(
            "exporting_report",
            format=report_format.value,
            file_name=file_name,
            title=payload.title,
        )

        try:
            data = renderer.render(payload, generated_at)
        except Exception as e:
            self._logger.error(
                "render_failed", format=report_format.value, file_name=file_name, error=str(e)
            )
            raise ExternalServiceError(
                "renderer", f"Failed to export {report_format.value}"
            ) from e

        full_name = f"{file_name}.{renderer.extension}"
        try:
            artifact = self._store.publish(full_name, data)
        except RentLedgerError:
            raise
        except Exception as e:
            self._logger.error("publish_failed", file_name=full_name, error=str(e))
            raise ExternalServiceError("artifact_store", f"Failed to publish {full_name}") from e

        self._logger.info(
            "export_completed",
            format=report_format.value,
            path=str(artifact.path),
            size=artifact.size,
        )
        return ExportResult(
            format=report_format,
            reference=artifact.reference,
            path=artifact.path,
            size=artifact.size,
            generated_at=generated_at,
        )

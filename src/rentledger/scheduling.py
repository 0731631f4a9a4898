"""Recurring report definitions and the tick that runs them."""

import asyncio
import os
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import structlog
import yaml  # type: ignore[import-untyped]

from rentledger.config import get_settings
from rentledger.errors import NotFoundError, ValidationError
from rentledger.export import (
    ExportResult,
    ReportExporter,
    ReportFormat,
    ReportPayload,
    balance_sheet_payload,
    cash_flow_payload,
    profit_loss_payload,
)
from rentledger.models import DateRange, ReportScope, to_date
from rentledger.statements import StatementBuilder

logger = structlog.get_logger(__name__)

_TIMESTAMPS = ("next_run_at", "created_at", "last_run_at")


class ReportType(str, Enum):
    PROFIT_LOSS = "PROFIT_LOSS"
    BALANCE_SHEET = "BALANCE_SHEET"
    CASH_FLOW = "CASH_FLOW"


@dataclass
class ScheduledReportDefinition:
    """A report that is generated and dispatched on a cadence."""

    id: str
    report_type: ReportType
    cadence: str
    parameters: dict[str, Any]
    recipients: list[str]
    format: ReportFormat
    next_run_at: datetime
    created_at: datetime
    active: bool = True
    last_run_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.update(report_type=self.report_type.value, format=self.format.value)
        for key in _TIMESTAMPS:
            data[key] = data[key].isoformat() if data[key] else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledReportDefinition":
        stamps = {key: data.get(key) for key in _TIMESTAMPS}
        return cls(
            id=str(data["id"]),
            report_type=ReportType(data["report_type"]),
            cadence=str(data["cadence"]),
            parameters=dict(data.get("parameters") or {}),
            recipients=list(data.get("recipients") or []),
            format=ReportFormat(data["format"]),
            active=bool(data.get("active", True)),
            **{k: datetime.fromisoformat(v) if v else None for k, v in stamps.items()},
        )


# === Cadence ===


class CadenceEvaluator(Protocol):
    def next_run(self, expression: str, after: datetime) -> datetime:
        """Return the first run time strictly after ``after``."""
        ...


class PresetCadenceEvaluator:
    """Evaluates the cron preset macros (``@daily``, ``@monthly``, ...)."""

    PRESETS = ("@hourly", "@daily", "@midnight", "@weekly", "@monthly", "@yearly", "@annually")

    def next_run(self, expression: str, after: datetime) -> datetime:
        preset = expression.strip().lower() if isinstance(expression, str) else ""
        if preset not in self.PRESETS:
            raise ValidationError(
                "Unsupported cadence expression",
                details={"cadence": expression, "supported": list(self.PRESETS)},
            )

        if preset == "@hourly":
            return after.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

        midnight = after.replace(hour=0, minute=0, second=0, microsecond=0)
        if preset in ("@daily", "@midnight"):
            return midnight + timedelta(days=1)
        if preset == "@weekly":
            # Sundays at midnight
            days_ahead = (6 - midnight.weekday()) % 7 or 7
            return midnight + timedelta(days=days_ahead)
        if preset == "@monthly":
            if midnight.month == 12:
                return midnight.replace(year=midnight.year + 1, month=1, day=1)
            return midnight.replace(month=midnight.month + 1, day=1)
        return midnight.replace(year=midnight.year + 1, month=1, day=1)


# === Repositories ===


class ScheduleRepository(Protocol):
    def save(self, definition: ScheduledReportDefinition) -> None: ...

    def get(self, definition_id: str) -> ScheduledReportDefinition | None: ...

    def delete(self, definition_id: str) -> bool: ...

    def list_all(self) -> list[ScheduledReportDefinition]: ...


class InMemoryScheduleRepository:
    def __init__(self) -> None:
        self._definitions: dict[str, ScheduledReportDefinition] = {}

    def save(self, definition: ScheduledReportDefinition) -> None:
        self._definitions[definition.id] = definition

    def get(self, definition_id: str) -> ScheduledReportDefinition | None:
        return self._definitions.get(definition_id)

    def delete(self, definition_id: str) -> bool:
        return self._definitions.pop(definition_id, None) is not None

    def list_all(self) -> list[ScheduledReportDefinition]:
        return list(self._definitions.values())


class YamlScheduleRepository:
    """Definitions kept in a YAML file, rewritten atomically on each change."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or get_settings().schedule_file)

    def _load(self) -> dict[str, ScheduledReportDefinition]:
        if not self.path.exists():
            return {}

        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path.name} must be a mapping with 'schedules'")
        items = data.get("schedules") or []
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise ValueError("schedules must be a list of mappings")

        definitions = (ScheduledReportDefinition.from_dict(item) for item in items)
        return {definition.id: definition for definition in definitions}

    def _write(self, definitions: dict[str, ScheduledReportDefinition]) -> None:
        document = {"schedules": [d.to_dict() for d in definitions.values()]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".", suffix=".yaml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(document, handle, sort_keys=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def save(self, definition: ScheduledReportDefinition) -> None:
        definitions = self._load()
        definitions[definition.id] = definition
        self._write(definitions)

    def get(self, definition_id: str) -> ScheduledReportDefinition | None:
        return self._load().get(definition_id)

    def delete(self, definition_id: str) -> bool:
        definitions = self._load()
        if definitions.pop(definition_id, None) is None:
            return False
        self._write(definitions)
        return True

    def list_all(self) -> list[ScheduledReportDefinition]:
        return list(self._load().values())


# === Running ===


class ReportRunner:
    """Builds and exports the report a definition describes."""

    def __init__(self, builder: StatementBuilder, exporter: ReportExporter):
        self._builder = builder
        self._exporter = exporter

    def build_payload(
        self, definition: ScheduledReportDefinition, now: datetime
    ) -> ReportPayload:
        params = definition.parameters
        scope = ReportScope(
            building_ids=params.get("building_ids") or (),
            unit_ids=params.get("unit_ids") or (),
        )

        if definition.report_type == ReportType.BALANCE_SHEET:
            as_of = to_date(params["as_of"], "as_of") if params.get("as_of") else now.date()
            return balance_sheet_payload(self._builder.generate_balance_sheet(as_of, scope))

        if params.get("start") and params.get("end"):
            period = DateRange(start=params["start"], end=params["end"])
        else:
            period = DateRange.year_to_date(now.date())

        if definition.report_type == ReportType.CASH_FLOW:
            return cash_flow_payload(self._builder.generate_cash_flow(period, scope))

        return profit_loss_payload(
            self._builder.generate_profit_loss(
                period,
                scope,
                compare_with=params.get("compare_with"),
                include_building_breakdown=bool(params.get("include_building_breakdown")),
            )
        )

    def run(self, definition: ScheduledReportDefinition, now: datetime) -> ExportResult:
        payload = self.build_payload(definition, now)
        file_name = (
            f"{definition.report_type.value.lower()}-{now:%Y%m%d%H%M%S}-{definition.id[:8]}"
        )
        return self._exporter.export(definition.format, payload, file_name)


Dispatcher = Callable[[ScheduledReportDefinition, ExportResult], Awaitable[None]]


@dataclass
class ScheduledRun:
    definition_id: str
    result: ExportResult | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportScheduler:
    """Persists recurring report definitions and runs the ones that are due."""

    def __init__(
        self,
        repository: ScheduleRepository | None = None,
        cadence: CadenceEvaluator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._repository = repository or InMemoryScheduleRepository()
        self._cadence = cadence or PresetCadenceEvaluator()
        self._clock = clock
        self._logger = logger.bind(component="report_scheduler")

    def schedule_report(
        self,
        report_type: ReportType | str,
        cadence: str,
        parameters: dict[str, Any] | None,
        recipients: list[str],
        format: ReportFormat | str,
    ) -> ScheduledReportDefinition:
        """Persist a new definition and compute its first run time.

        Raises:
            ValidationError: If any argument is malformed.
        """
        try:
            report_type = ReportType(report_type)
        except ValueError as e:
            raise ValidationError(
                "Unknown report type", details={"report_type": report_type}
            ) from e
        try:
            format = ReportFormat(format)
        except ValueError as e:
            raise ValidationError("Unknown report format", details={"format": format}) from e
        if parameters is not None and not isinstance(parameters, dict):
            raise ValidationError("parameters must be a mapping")
        if (
            isinstance(recipients, str)
            or not recipients
            or not all(isinstance(r, str) and r for r in recipients)
        ):
            raise ValidationError(
                "recipients must be a non-empty list of addresses",
                details={"recipients": repr(recipients)},
            )

        now = self._clock()
        definition = ScheduledReportDefinition(
            id=str(uuid4()),
            report_type=report_type,
            cadence=cadence,
            parameters=dict(parameters or {}),
            recipients=list(recipients),
            format=format,
            next_run_at=self._cadence.next_run(cadence, now),
            created_at=now,
        )
        self._repository.save(definition)

        self._logger.info(
            "report_scheduled",
            schedule_id=definition.id,
            report_type=report_type.value,
            cadence=cadence,
            next_run_at=definition.next_run_at.isoformat(),
        )
        return definition

    def _require(self, definition_id: str) -> ScheduledReportDefinition:
        definition = self._repository.get(definition_id)
        if definition is None:
            raise NotFoundError("Scheduled report", definition_id)
        return definition

    def deactivate(self, definition_id: str) -> ScheduledReportDefinition:
        definition = replace(self._require(definition_id), active=False)
        self._repository.save(definition)
        self._logger.info("report_deactivated", schedule_id=definition_id)
        return definition

    def delete(self, definition_id: str) -> None:
        if not self._repository.delete(definition_id):
            raise NotFoundError("Scheduled report", definition_id)
        self._logger.info("report_deleted", schedule_id=definition_id)

    def list_active(self) -> list[ScheduledReportDefinition]:
        return [d for d in self._repository.list_all() if d.active]

    def due(self, now: datetime | None = None) -> list[ScheduledReportDefinition]:
        """Active definitions whose next run is at or before ``now``.

        Raises:
            ValidationError: If ``now`` is a naive datetime.
        """
        now = now or self._clock()
        if now.tzinfo is None:
            raise ValidationError("now must be timezone-aware", details={"now": now.isoformat()})
        due = [d for d in self.list_active() if d.next_run_at <= now]
        return sorted(due, key=lambda d: d.next_run_at)

    async def run_due(
        self,
        now: datetime | None,
        runner: ReportRunner,
        dispatcher: Dispatcher,
    ) -> list[ScheduledRun]:
        """Run every due definition once.

        A failing definition is logged and skipped; the rest still run and
        its next run time still advances. Nothing is retried. A definition
        deleted or deactivated while its report ran is left as it now is.
        """
        now = now or self._clock()
        definitions = self.due(now)
        runs: list[ScheduledRun] = []

        self._logger.info("scheduler_tick", now=now.isoformat(), due=len(definitions))

        for definition in definitions:
            run = ScheduledRun(definition_id=definition.id)
            try:
                run.result = await asyncio.to_thread(runner.run, definition, now)
                await dispatcher(definition, run.result)
            except Exception as e:
                run.error = str(e)
                self._logger.error(
                    "scheduled_report_failed",
                    schedule_id=definition.id,
                    report_type=definition.report_type.value,
                    error=str(e),
                )
            runs.append(run)

            current = self._repository.get(definition.id)
            if current is None:
                self._logger.info("scheduled_report_removed", schedule_id=definition.id)
                continue
            self._repository.save(
                replace(
                    current,
                    last_run_at=now,
                    next_run_at=self._cadence.next_run(current.cadence, now),
                )
            )

        self._logger.info(
            "scheduler_tick_completed",
            ran=len(runs),
            failed=sum(1 for r in runs if not r.succeeded),
        )
        return runs

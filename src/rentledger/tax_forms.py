"""Annual 1099 vendor reporting."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

import structlog

from rentledger.config import get_settings
from rentledger.errors import ExternalServiceError, ValidationError
from rentledger.models import DateRange, VendorAccount, VendorInvoice
from rentledger.store import LedgerStore, RecordKind, RecordQuery

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Form1099:
    """Data for one vendor's 1099 form."""

    year: int
    vendor_id: str
    payer_name: str
    payer_tin: str
    recipient_name: str
    recipient_tin: str
    box1: Decimal  # Rents
    box2: Decimal = Decimal("0")  # Royalties
    box3: Decimal = Decimal("0")  # Other income

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "vendor_id": self.vendor_id,
            "payer_name": self.payer_name,
            "payer_tin": self.payer_tin,
            "recipient_name": self.recipient_name,
            "recipient_tin": self.recipient_tin,
            "box1": str(self.box1),
            "box2": str(self.box2),
            "box3": str(self.box3),
        }


@dataclass(frozen=True)
class VendorTaxSummary:
    """Payments to one vendor in a tax year."""

    vendor_id: str
    vendor_name: str
    tax_id: str | None
    total_payments: Decimal
    form_required: bool
    missing_tax_id: bool


@dataclass
class TaxFormSummary:
    total_vendors: int = 0
    total_1099_required: int = 0
    missing_tax_id: int = 0
    total_amount: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_vendors": self.total_vendors,
            "total_1099_required": self.total_1099_required,
            "missing_tax_id": self.missing_tax_id,
            "total_amount": self.total_amount,
        }


@dataclass
class TaxFormRun:
    """Result of generating a year's forms."""

    year: int
    forms: list[Form1099] = field(default_factory=list)
    vendors: list[VendorTaxSummary] = field(default_factory=list)
    summary: TaxFormSummary = field(default_factory=TaxFormSummary)


@dataclass(frozen=True)
class FilingResult:
    """Gateway verdict for one submitted form."""

    vendor_id: str
    accepted: bool
    confirmation_number: str | None = None
    error: str | None = None


@dataclass
class FilingSubmission:
    """Outcome of submitting a batch of forms.

    Rejections are reported back to the caller; nothing is retried here.
    """

    results: list[FilingResult] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return len(self.results)

    @property
    def accepted(self) -> int:
        return sum(1 for r in self.results if r.accepted)

    @property
    def rejected(self) -> int:
        return self.submitted - self.accepted

    @property
    def confirmation_numbers(self) -> list[str]:
        return [r.confirmation_number for r in self.results if r.confirmation_number]

    @property
    def errors(self) -> list[dict[str, str]]:
        return [
            {"vendor_id": r.vendor_id, "error": r.error or "rejected"}
            for r in self.results
            if not r.accepted
        ]


class FilingGateway(Protocol):
    """External e-filing service."""

    async def submit(self, forms: Sequence[Form1099]) -> list[FilingResult]: ...


class TaxFormGenerator:
    """Derives 1099 eligibility from paid vendor invoices."""

    def __init__(
        self,
        store: LedgerStore,
        gateway: FilingGateway | None = None,
        threshold: Decimal | None = None,
        today: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self._store = store
        self._gateway = gateway
        self._threshold = (
            threshold if threshold is not None else Decimal(str(settings.form_1099_threshold))
        )
        self._min_year = settings.tax_min_year
        self._payer_name = settings.payer_name
        self._payer_tin = settings.payer_tin
        self._today = today
        self._logger = logger.bind(component="tax_forms")

    def generate_annual_vendor_forms(self, year: int) -> TaxFormRun:
        """Generate 1099 forms for vendors paid in a calendar year.

        A vendor needs a form when paid at least the threshold and has a tax
        id on file. Vendors over the threshold without a tax id get no form
        but are counted in ``summary.missing_tax_id``.
        """
        current_year = self._today().year
        if not isinstance(year, int) or isinstance(year, bool):
            raise ValidationError("year must be an integer", details={"value": repr(year)})
        if year < self._min_year or year > current_year:
            raise ValidationError(
                f"Invalid year. Must be between {self._min_year} and {current_year}.",
                details={"year": year},
            )

        tax_year = DateRange.calendar_year(year)
        vendors: list[VendorAccount] = self._store.query(RecordQuery(kind=RecordKind.VENDOR))
        invoices: list[VendorInvoice] = self._store.query(
            RecordQuery(kind=RecordKind.VENDOR_INVOICE)
        )

        paid: dict[str, Decimal] = {}
        for invoice in invoices:
            if invoice.paid_date is not None and tax_year.contains(invoice.paid_date):
                paid[invoice.vendor_id] = paid.get(invoice.vendor_id, Decimal("0")) + invoice.amount

        run = TaxFormRun(year=year)
        for vendor in vendors:
            total = paid.get(vendor.id, Decimal("0"))
            over_threshold = total >= self._threshold
            form_required = over_threshold and vendor.has_tax_id
            run.vendors.append(
                VendorTaxSummary(
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    tax_id=vendor.tax_id,
                    total_payments=total,
                    form_required=form_required,
                    missing_tax_id=over_threshold and not vendor.has_tax_id,
                )
            )
            if form_required:
                run.forms.append(
                    Form1099(
                        year=year,
                        vendor_id=vendor.id,
                        payer_name=self._payer_name,
                        payer_tin=self._payer_tin,
                        recipient_name=vendor.name,
                        recipient_tin=vendor.tax_id or "",
                        box1=total,
                    )
                )

        run.summary = TaxFormSummary(
            total_vendors=len(vendors),
            total_1099_required=len(run.forms),
            missing_tax_id=sum(1 for v in run.vendors if v.missing_tax_id),
            total_amount=sum((v.total_payments for v in run.vendors), Decimal("0")),
        )

        if run.summary.missing_tax_id:
            self._logger.warning(
                "vendors_missing_tax_id",
                year=year,
                count=run.summary.missing_tax_id,
            )
        self._logger.info(
            "forms_generated",
            year=year,
            vendors=run.summary.total_vendors,
            forms=run.summary.total_1099_required,
            total_amount=str(run.summary.total_amount),
        )
        return run

    async def submit_forms(self, forms: Sequence[Form1099]) -> FilingSubmission:
        """Submit forms to the filing gateway.

        Raises:
            ExternalServiceError: If no gateway is configured or it fails.
        """
        if self._gateway is None:
            raise ExternalServiceError("filing_gateway", "No filing gateway configured")
        if not forms:
            return FilingSubmission()

        try:
            results = await self._gateway.submit(list(forms))
        except ExternalServiceError:
            self._logger.error("filing_failed", forms=len(forms))
            raise
        except Exception as e:
            self._logger.error("filing_failed", forms=len(forms), error=str(e))
            raise ExternalServiceError("filing_gateway", str(e)) from e

        submission = FilingSubmission(results=list(results))
        self._logger.info(
            "forms_submitted",
            submitted=submission.submitted,
            accepted=submission.accepted,
            rejected=submission.rejected,
        )
        return submission

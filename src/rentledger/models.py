"""Domain records for the portfolio ledger.

Records are immutable. Money is always ``Decimal``; floats are rejected at
construction so that no binary rounding error can enter a sum. Dates are
timezone-naive calendar dates.
"""

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import structlog

from rentledger.errors import ValidationError

logger = structlog.get_logger(__name__)


class TransactionType(str, Enum):
    """Direction of a ledger transaction."""

    INCOME = "income"
    EXPENSE = "expense"


class Category(str, Enum):
    """Closed set of ledger categories.

    Anything that does not parse to a known member is bucketed into OTHER.
    """

    # Revenue
    RENT_INCOME = "rent_income"
    LATE_FEE = "late_fee"
    PARKING = "parking"
    PET_FEE = "pet_fee"

    # Operating expenses
    MAINTENANCE = "maintenance"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    PROPERTY_TAX = "property_tax"
    MANAGEMENT_FEE = "management_fee"
    MARKETING = "marketing"
    LEGAL = "legal"
    ACCOUNTING = "accounting"
    CAPITAL_IMPROVEMENT = "capital_improvement"

    # Financing costs
    MORTGAGE_INTEREST = "mortgage_interest"
    LOAN_FEES = "loan_fees"

    # Balance sheet movements
    SECURITY_DEPOSIT = "security_deposit"
    PREPAID_EXPENSE = "prepaid_expense"
    PROPERTY_ACQUISITION = "property_acquisition"
    EQUIPMENT = "equipment"
    DEPRECIATION = "depreciation"
    MORTGAGE = "mortgage"
    LOAN = "loan"
    CREDIT_LINE = "credit_line"
    OWNER_EQUITY = "owner_equity"

    # Catch-all
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "Category":
        """Parse a category from a member, name or value.

        Legacy names are mapped through aliases; unrecognized values
        become OTHER instead of failing.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            key = _CATEGORY_ALIASES.get(key, key)
            member = cls.__members__.get(key)
            if member is not None:
                return member
        logger.debug("unknown_category", value=str(value))
        return cls.OTHER


_CATEGORY_ALIASES: dict[str, str] = {
    "RENT": "RENT_INCOME",
    "TAXES": "PROPERTY_TAX",
    "ADMINISTRATIVE": "ACCOUNTING",
    "MANAGEMENT_FEES": "MANAGEMENT_FEE",
    "PET_FEES": "PET_FEE",
    "LATE_FEES": "LATE_FEE",
    "OTHER_INCOME": "OTHER",
    "OTHER_EXPENSE": "OTHER",
    "OTHER_EXPENSES": "OTHER",
}


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce a money value to Decimal, rejecting floats and garbage."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field_name} must be a Decimal, int or numeric string",
            details={"field": field_name, "value": repr(value)},
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(
                f"{field_name} is not a valid amount",
                details={"field": field_name, "value": repr(value)},
            ) from e
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite", details={"field": field_name})
    return result


def to_date(value: Any, field_name: str = "date") -> date:
    """Coerce a date-like value to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise ValidationError(
                f"{field_name} is not an ISO date", details={"value": value}
            ) from e
    raise ValidationError(f"{field_name} must be a date", details={"value": repr(value)})


def _optional_date(value: Any, field_name: str) -> date | None:
    return None if value is None else to_date(value, field_name)


@dataclass(frozen=True)
class Transaction:
    """A posted ledger transaction.

    ``amount`` is signed: a reversing entry carries a negative amount.
    """

    id: str
    date: date
    amount: Decimal
    category: Category
    type: TransactionType
    account_id: str | None = None
    building_id: str | None = None
    unit_id: str | None = None
    description: str = ""
    reconciled: bool = False
    reconciliation_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "category", Category.parse(self.category))
        try:
            object.__setattr__(self, "type", TransactionType(self.type))
        except ValueError as e:
            raise ValidationError(
                "type must be income or expense", details={"value": self.type}
            ) from e

    @property
    def effective_date(self) -> date:
        return self.date

    @property
    def cash_amount(self) -> Decimal:
        """Signed effect on cash: inflows positive, outflows negative."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount

    def mark_reconciled(self, key: str) -> "Transaction":
        return replace(self, reconciled=True, reconciliation_key=key)


@dataclass(frozen=True)
class MaintenanceCost:
    """Actual cost of a completed work order."""

    id: str
    completed_date: date
    actual_cost: Decimal
    building_id: str | None = None
    unit_id: str | None = None
    paid_date: date | None = None
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "completed_date", to_date(self.completed_date))
        object.__setattr__(self, "actual_cost", to_money(self.actual_cost, "actual_cost"))
        object.__setattr__(self, "paid_date", _optional_date(self.paid_date, "paid_date"))

    @property
    def effective_date(self) -> date:
        return self.completed_date

    def is_paid_by(self, as_of: date) -> bool:
        return self.paid_date is not None and self.paid_date <= as_of


@dataclass(frozen=True)
class RentCharge:
    """A rent or fee charge raised against a tenant."""

    id: str
    due_date: date
    amount: Decimal
    building_id: str | None = None
    unit_id: str | None = None
    paid_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "due_date", to_date(self.due_date, "due_date"))
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "paid_date", _optional_date(self.paid_date, "paid_date"))

    @property
    def effective_date(self) -> date:
        return self.due_date

    def is_open_on(self, as_of: date) -> bool:
        """True when the charge was raised but not yet settled on as_of."""
        if self.due_date > as_of:
            return False
        return self.paid_date is None or self.paid_date > as_of


@dataclass(frozen=True)
class VendorAccount:
    """A vendor that may require an annual 1099 form."""

    id: str
    name: str
    tax_id: str | None = None

    @property
    def has_tax_id(self) -> bool:
        return bool(self.tax_id and self.tax_id.strip())


@dataclass(frozen=True)
class VendorInvoice:
    """An invoice billed by a vendor."""

    id: str
    vendor_id: str
    issued_date: date
    amount: Decimal
    building_id: str | None = None
    unit_id: str | None = None
    paid_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "issued_date", to_date(self.issued_date, "issued_date"))
        object.__setattr__(self, "amount", to_money(self.amount))
        object.__setattr__(self, "paid_date", _optional_date(self.paid_date, "paid_date"))

    @property
    def effective_date(self) -> date:
        return self.issued_date

    def is_open_on(self, as_of: date) -> bool:
        if self.issued_date > as_of:
            return False
        return self.paid_date is None or self.paid_date > as_of


@dataclass(frozen=True)
class BankAccount:
    """A bank account that statements are reconciled against."""

    id: str
    name: str = ""


@dataclass(frozen=True)
class BankStatementLine:
    """One line of an externally reported bank statement."""

    date: date
    description: str
    amount: Decimal
    external_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "amount", to_money(self.amount))


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _shift_year(value: date, years: int) -> date:
    target = value.year + years
    last_day = calendar.monthrange(target, value.month)[1]
    return value.replace(year=target, day=min(value.day, last_day))


@dataclass(frozen=True)
class DateRange:
    """An inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        start = to_date(self.start, "start")
        end = to_date(self.end, "end")
        if start > end:
            raise ValidationError(
                "start date must not be after end date",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def year_to_date(cls, today: date | None = None) -> "DateRange":
        """January 1 of the current year through today."""
        today = today or date.today()
        return cls(start=date(today.year, 1, 1), end=today)

    @classmethod
    def calendar_year(cls, year: int) -> "DateRange":
        return cls(start=date(year, 1, 1), end=date(year, 12, 31))

    @classmethod
    def month(cls, year: int, month: int) -> "DateRange":
        start, end = month_bounds(year, month)
        return cls(start=start, end=end)

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    def previous_month(self) -> "DateRange":
        """The calendar month before the one the range starts in."""
        year, month = self.start.year, self.start.month - 1
        if month == 0:
            year, month = year - 1, 12
        return DateRange.month(year, month)

    def previous_year(self) -> "DateRange":
        """The same window one year earlier (Feb 29 clamps to Feb 28)."""
        return DateRange(start=_shift_year(self.start, -1), end=_shift_year(self.end, -1))

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def _id_tuple(values: Any, field_name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        raise ValidationError(f"{field_name} must be a list of ids, not a string")
    ids = tuple(values)
    for value in ids:
        if not isinstance(value, str) or not value:
            raise ValidationError(
                f"{field_name} must contain non-empty string ids",
                details={"field": field_name, "value": repr(value)},
            )
    return ids


@dataclass(frozen=True)
class ReportScope:
    """The portfolio subset a report is restricted to.

    With no ids the whole portfolio is in scope. Otherwise a record is in
    scope when it belongs to one of the buildings or one of the units.
    Unknown ids simply match nothing.
    """

    building_ids: tuple[str, ...] = ()
    unit_ids: tuple[str, ...] = ()
    date_range: DateRange | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "building_ids", _id_tuple(self.building_ids, "building_ids"))
        object.__setattr__(self, "unit_ids", _id_tuple(self.unit_ids, "unit_ids"))

    @property
    def is_portfolio(self) -> bool:
        return not self.building_ids and not self.unit_ids

    def includes(self, building_id: str | None, unit_id: str | None) -> bool:
        if self.is_portfolio:
            return True
        if building_id is not None and building_id in self.building_ids:
            return True
        return unit_id is not None and unit_id in self.unit_ids

    def with_range(self, date_range: DateRange | None) -> "ReportScope":
        return replace(self, date_range=date_range)

    def to_dict(self) -> dict[str, Any]:
        return {
            "building_ids": list(self.building_ids),
            "unit_ids": list(self.unit_ids),
            "date_range": self.date_range.to_dict() if self.date_range else None,
        }

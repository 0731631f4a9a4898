"""Tests for ledger records, date ranges and report scopes."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from rentledger.errors import ValidationError
from rentledger.models import (
    BankStatementLine,
    Category,
    DateRange,
    MaintenanceCost,
    RentCharge,
    ReportScope,
    Transaction,
    TransactionType,
    VendorAccount,
    to_money,
)


class TestCategory:
    """Tests for category parsing."""

    def test_parse_member_value_and_name(self):
        """Test parsing by member, value and name."""
        assert Category.parse(Category.UTILITIES) is Category.UTILITIES
        assert Category.parse("utilities") is Category.UTILITIES
        assert Category.parse("UTILITIES") is Category.UTILITIES
        assert Category.parse("rent-income") is Category.RENT_INCOME

    def test_parse_legacy_aliases(self):
        """Test that legacy names map to current categories."""
        assert Category.parse("RENT") is Category.RENT_INCOME
        assert Category.parse("TAXES") is Category.PROPERTY_TAX
        assert Category.parse("MANAGEMENT_FEES") is Category.MANAGEMENT_FEE
        assert Category.parse("OTHER_INCOME") is Category.OTHER

    def test_unknown_category_becomes_other(self):
        """Test that typos land in the OTHER bucket instead of a new category."""
        assert Category.parse("utilties") is Category.OTHER
        assert Category.parse(None) is Category.OTHER
        assert Category.parse(42) is Category.OTHER


class TestMoney:
    """Tests for money coercion."""

    def test_accepts_decimal_int_and_string(self):
        """Test accepted money inputs."""
        assert to_money(Decimal("1.10")) == Decimal("1.10")
        assert to_money(5) == Decimal("5")
        assert to_money("19.99") == Decimal("19.99")

    def test_rejects_float(self):
        """Test that floats are rejected to avoid binary rounding."""
        with pytest.raises(ValidationError):
            to_money(0.1)

    def test_rejects_garbage(self):
        """Test that non-numeric values are rejected."""
        with pytest.raises(ValidationError):
            to_money("ten dollars")
        with pytest.raises(ValidationError):
            to_money("NaN")
        with pytest.raises(ValidationError):
            to_money(True)


class TestTransaction:
    """Tests for the Transaction record."""

    def test_coerces_fields(self):
        """Test that string inputs are coerced on construction."""
        tx = Transaction(
            id="t1",
            date="2024-01-05",
            amount="100.00",
            category="RENT",
            type="income",
        )

        assert tx.date == date(2024, 1, 5)
        assert tx.amount == Decimal("100.00")
        assert tx.category is Category.RENT_INCOME
        assert tx.type is TransactionType.INCOME

    def test_cash_amount_sign(self):
        """Test that expenses reduce cash."""
        income = Transaction("t1", date(2024, 1, 1), Decimal("50"), "rent_income", "income")
        expense = Transaction("t2", date(2024, 1, 1), Decimal("50"), "utilities", "expense")

        assert income.cash_amount == Decimal("50")
        assert expense.cash_amount == Decimal("-50")

    def test_invalid_type_rejected(self):
        """Test that an unknown transaction type is rejected."""
        with pytest.raises(ValidationError):
            Transaction("t1", date(2024, 1, 1), Decimal("1"), "other", "transfer")

    def test_datetime_truncated_to_date(self):
        """Test that datetimes are reduced to calendar dates."""
        tx = Transaction(
            "t1", datetime(2024, 3, 1, 23, 59), Decimal("1"), "other", "expense"
        )
        assert tx.date == date(2024, 3, 1)

    def test_mark_reconciled_returns_copy(self):
        """Test that reconciling produces a new record."""
        tx = Transaction("t1", date(2024, 1, 1), Decimal("1"), "other", "expense")
        done = tx.mark_reconciled("acct:2024-01-31")

        assert done.reconciled
        assert done.reconciliation_key == "acct:2024-01-31"
        assert not tx.reconciled


class TestOpenItems:
    """Tests for paid/open status of charges and costs."""

    def test_rent_charge_open_until_paid(self):
        """Test that a charge is open between due date and payment."""
        charge = RentCharge("c1", date(2024, 1, 1), Decimal("1000"), paid_date=date(2024, 1, 10))

        assert not charge.is_open_on(date(2023, 12, 31))
        assert charge.is_open_on(date(2024, 1, 5))
        assert not charge.is_open_on(date(2024, 1, 10))

    def test_maintenance_paid_by(self):
        """Test paid status of a maintenance cost."""
        cost = MaintenanceCost("m1", date(2024, 1, 3), Decimal("80"), paid_date="2024-01-20")

        assert not cost.is_paid_by(date(2024, 1, 19))
        assert cost.is_paid_by(date(2024, 1, 20))

    def test_vendor_tax_id_blank_is_missing(self):
        """Test that a whitespace tax id counts as missing."""
        assert not VendorAccount("v1", "Acme", tax_id="  ").has_tax_id
        assert VendorAccount("v2", "Acme", tax_id="98-7654321").has_tax_id

    def test_bank_line_coerces_amount(self):
        """Test that statement lines coerce amounts to Decimal."""
        line = BankStatementLine("2024-01-06", "DEPOSIT", "100.00", "b1")
        assert line.amount == Decimal("100.00")
        assert line.date == date(2024, 1, 6)


class TestDateRange:
    """Tests for DateRange."""

    def test_inverted_range_rejected(self):
        """Test that start after end is a validation error."""
        with pytest.raises(ValidationError):
            DateRange(start=date(2024, 2, 1), end=date(2024, 1, 1))

    def test_single_day_range(self):
        """Test that a one-day range is inclusive on both ends."""
        day = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 1))
        assert day.contains(date(2024, 1, 1))
        assert not day.contains(date(2024, 1, 2))

    def test_year_to_date(self):
        """Test year-to-date window."""
        ytd = DateRange.year_to_date(date(2024, 6, 30))
        assert ytd.start == date(2024, 1, 1)
        assert ytd.end == date(2024, 6, 30)

    def test_previous_month_wraps_year(self):
        """Test that January compares against the prior December."""
        prev = DateRange.month(2024, 1).previous_month()
        assert prev == DateRange(start=date(2023, 12, 1), end=date(2023, 12, 31))

    def test_previous_year_clamps_leap_day(self):
        """Test that Feb 29 shifts to Feb 28 a year earlier."""
        prev = DateRange(start=date(2024, 2, 1), end=date(2024, 2, 29)).previous_year()
        assert prev.end == date(2023, 2, 28)


class TestReportScope:
    """Tests for ReportScope."""

    def test_empty_scope_is_portfolio(self):
        """Test that no ids means the whole portfolio."""
        scope = ReportScope()
        assert scope.is_portfolio
        assert scope.includes(None, None)
        assert scope.includes("b1", "u1")

    def test_includes_building_or_unit(self):
        """Test that a record matches on building or unit id."""
        scope = ReportScope(building_ids=["b1"], unit_ids=["u9"])

        assert scope.includes("b1", "u1")
        assert scope.includes("b2", "u9")
        assert not scope.includes("b2", "u1")
        assert not scope.includes(None, None)

    def test_string_ids_rejected(self):
        """Test that a bare string is not accepted as an id list."""
        with pytest.raises(ValidationError):
            ReportScope(building_ids="b1")

    def test_non_string_id_rejected(self):
        """Test that non-string ids are malformed."""
        with pytest.raises(ValidationError):
            ReportScope(unit_ids=[1, 2])

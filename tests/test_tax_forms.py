"""Tests for 1099 vendor form generation and submission."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from rentledger.errors import ExternalServiceError, ValidationError
from rentledger.models import VendorAccount, VendorInvoice
from rentledger.tax_forms import FilingResult, TaxFormGenerator


@pytest.fixture
def vendor_store(store):
    store.add_vendors(
        [
            VendorAccount("v1", "Ace Plumbing", tax_id="11-1111111"),
            VendorAccount("v2", "Bob's Handyman", tax_id=None),
            VendorAccount("v3", "Small Jobs LLC", tax_id="33-3333333"),
        ]
    )
    store.add_vendor_invoices(
        [
            VendorInvoice("i1", "v1", date(2023, 3, 1), Decimal("400"), paid_date=date(2023, 3, 10)),
            VendorInvoice("i2", "v1", date(2023, 8, 1), Decimal("300"), paid_date=date(2023, 8, 5)),
            VendorInvoice("i3", "v2", date(2023, 5, 1), Decimal("700"), paid_date=date(2023, 5, 2)),
            VendorInvoice("i4", "v3", date(2023, 6, 1), Decimal("599.99"), paid_date=date(2023, 6, 3)),
            # Paid the following year
            VendorInvoice("i5", "v3", date(2023, 12, 20), Decimal("50"), paid_date=date(2024, 1, 4)),
            # Never paid
            VendorInvoice("i6", "v1", date(2023, 11, 1), Decimal("5000")),
        ]
    )
    return store


@pytest.fixture
def generator(vendor_store):
    return TaxFormGenerator(vendor_store, today=lambda: date(2024, 6, 30))


class TestGenerateAnnualVendorForms:
    """Tests for generate_annual_vendor_forms."""

    def test_vendor_with_tax_id_over_threshold(self, generator):
        """Test that a vendor paid 700 with a tax id gets a form."""
        run = generator.generate_annual_vendor_forms(2023)

        assert [form.vendor_id for form in run.forms] == ["v1"]
        form = run.forms[0]
        assert form.box1 == Decimal("700")
        assert form.box2 == Decimal("0")
        assert form.box3 == Decimal("0")
        assert form.recipient_name == "Ace Plumbing"
        assert form.recipient_tin == "11-1111111"
        assert form.payer_name == "Test Property Co"

    def test_missing_tax_id_excluded_but_counted(self, generator):
        """Test that a vendor without a tax id is counted but gets no form."""
        run = generator.generate_annual_vendor_forms(2023)

        assert run.summary.total_vendors == 3
        assert run.summary.total_1099_required == 1
        assert run.summary.missing_tax_id == 1
        v2 = next(v for v in run.vendors if v.vendor_id == "v2")
        assert v2.missing_tax_id
        assert not v2.form_required

    def test_below_threshold_and_cash_basis(self, generator):
        """Test that only payments made in the year count toward the threshold."""
        run = generator.generate_annual_vendor_forms(2023)

        v3 = next(v for v in run.vendors if v.vendor_id == "v3")
        assert v3.total_payments == Decimal("599.99")
        assert not v3.form_required
        assert not v3.missing_tax_id
        assert run.summary.total_amount == Decimal("1999.99")

    def test_threshold_is_inclusive(self, vendor_store):
        """Test that paying exactly the threshold requires a form."""
        generator = TaxFormGenerator(
            vendor_store, threshold=Decimal("599.99"), today=lambda: date(2024, 6, 30)
        )

        run = generator.generate_annual_vendor_forms(2023)

        assert {form.vendor_id for form in run.forms} == {"v1", "v3"}

    @pytest.mark.parametrize("year", [2019, 2025])
    def test_year_out_of_range(self, generator, year):
        """Test that years outside the supported range are rejected."""
        with pytest.raises(ValidationError):
            generator.generate_annual_vendor_forms(year)

    def test_year_must_be_int(self, generator):
        """Test that a string year is rejected."""
        with pytest.raises(ValidationError):
            generator.generate_annual_vendor_forms("2023")

    def test_form_to_dict_uses_strings(self, generator):
        """Test that form amounts serialize as exact strings."""
        data = generator.generate_annual_vendor_forms(2023).forms[0].to_dict()

        assert data["box1"] == "700"
        assert data["year"] == 2023


class TestSubmitForms:
    """Tests for submit_forms."""

    @pytest.mark.asyncio
    async def test_submit_reports_per_form_results(self, vendor_store):
        """Test accepted and rejected forms are reported back."""
        gateway = AsyncMock()
        gateway.submit.return_value = [
            FilingResult(vendor_id="v1", accepted=True, confirmation_number="CONF-1"),
            FilingResult(vendor_id="v3", accepted=False, error="TIN mismatch"),
        ]
        generator = TaxFormGenerator(
            vendor_store,
            gateway=gateway,
            threshold=Decimal("500"),
            today=lambda: date(2024, 6, 30),
        )
        forms = generator.generate_annual_vendor_forms(2023).forms

        submission = await generator.submit_forms(forms)

        gateway.submit.assert_awaited_once_with(forms)
        assert submission.submitted == 2
        assert submission.accepted == 1
        assert submission.rejected == 1
        assert submission.confirmation_numbers == ["CONF-1"]
        assert submission.errors == [{"vendor_id": "v3", "error": "TIN mismatch"}]

    @pytest.mark.asyncio
    async def test_empty_forms_skip_gateway(self, vendor_store):
        """Test that nothing is sent when there are no forms."""
        gateway = AsyncMock()
        generator = TaxFormGenerator(vendor_store, gateway=gateway)

        submission = await generator.submit_forms([])

        gateway.submit.assert_not_awaited()
        assert submission.submitted == 0

    @pytest.mark.asyncio
    async def test_gateway_failure_is_external_error(self, vendor_store):
        """Test that an unexpected gateway failure is wrapped."""
        gateway = AsyncMock()
        gateway.submit.side_effect = ConnectionError("down")
        generator = TaxFormGenerator(vendor_store, gateway=gateway, today=lambda: date(2024, 6, 30))
        forms = generator.generate_annual_vendor_forms(2023).forms

        with pytest.raises(ExternalServiceError) as exc_info:
            await generator.submit_forms(forms)

        assert exc_info.value.service == "filing_gateway"
        gateway.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_gateway_configured(self, generator):
        """Test that submitting without a gateway fails clearly."""
        forms = generator.generate_annual_vendor_forms(2023).forms

        with pytest.raises(ExternalServiceError):
            await generator.submit_forms(forms)

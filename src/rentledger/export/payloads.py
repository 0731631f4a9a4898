"""Format-independent report payloads built from statements.

Money is rounded to cents here and nowhere earlier; renderers only lay out
the strings they are given.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from rentledger.models import DateRange
from rentledger.reconciliation import ReconciliationResult
from rentledger.statements import BalanceSheet, CashFlowStatement, ProfitLossStatement
from rentledger.tax_forms import TaxFormRun

CENTS = Decimal("0.01")

AMOUNT_COLUMNS = ("Item", "Amount")


def format_money(value: Decimal) -> str:
    return str(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def format_percent(value: Decimal) -> str:
    return f"{value.quantize(CENTS, rounding=ROUND_HALF_UP)}%"


def _label(key: str) -> str:
    return key.replace("_", " ").title()


@dataclass(frozen=True)
class ReportSection:
    """A titled table of string cells."""

    title: str
    columns: tuple[str, ...] = AMOUNT_COLUMNS
    rows: tuple[tuple[str, ...], ...] = ()

    @classmethod
    def from_amounts(cls, title: str, amounts: dict[str, Decimal]) -> "ReportSection":
        """Build a two-column section from a mapping of line names to money."""
        return cls(
            title=title,
            rows=tuple((_label(key), format_money(value)) for key, value in amounts.items()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
        }


@dataclass(frozen=True)
class ReportPayload:
    """Everything a renderer needs to lay out one report."""

    title: str
    period: DateRange | None = None
    as_of: date | None = None
    summary: tuple[tuple[str, str], ...] = ()
    sections: tuple[ReportSection, ...] = field(default_factory=tuple)

    @property
    def period_label(self) -> str:
        if self.period is not None:
            return f"Period: {self.period.start.isoformat()} to {self.period.end.isoformat()}"
        if self.as_of is not None:
            return f"As of: {self.as_of.isoformat()}"
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "period": self.period.to_dict() if self.period else None,
            "as_of": self.as_of.isoformat() if self.as_of else None,
            "summary": [list(item) for item in self.summary],
            "sections": [section.to_dict() for section in self.sections],
        }


def profit_loss_payload(statement: ProfitLossStatement) -> ReportPayload:
    margins = statement.margins
    summary = (
        ("Total Revenue", format_money(statement.total_revenue)),
        ("Total Expenses", format_money(statement.total_expenses)),
        ("Net Operating Income", format_money(statement.net_operating_income)),
        ("Net Income", format_money(statement.net_income)),
        ("Gross Margin", format_percent(margins.gross_margin)),
        ("Operating Margin", format_percent(margins.operating_margin)),
        ("Net Margin", format_percent(margins.net_margin)),
    )
    sections = [
        ReportSection.from_amounts("Revenue", statement.revenue.to_dict()),
        ReportSection.from_amounts("Expenses", statement.expenses.to_dict()),
        ReportSection.from_amounts("Financial Expenses", statement.financial_expenses.to_dict()),
    ]

    if statement.comparison is not None:
        comparison = statement.comparison
        sections.append(
            ReportSection(
                title=f"Comparison ({_label(comparison.basis.value)})",
                columns=("Metric", "Current", "Previous", "Change", "Change %"),
                rows=tuple(
                    (
                        _label(name),
                        format_money(metric.current),
                        format_money(metric.previous),
                        format_money(metric.change),
                        format_percent(metric.percent_change),
                    )
                    for name, metric in comparison.metrics.items()
                ),
            )
        )

    if statement.buildings:
        sections.append(
            ReportSection(
                title="By Building",
                columns=("Building", "Revenue", "Expenses", "Net Operating Income"),
                rows=tuple(
                    (
                        b.building_id,
                        format_money(b.total_revenue),
                        format_money(b.total_expenses),
                        format_money(b.net_operating_income),
                    )
                    for b in statement.buildings
                ),
            )
        )

    return ReportPayload(
        title="Profit & Loss Statement",
        period=statement.period,
        summary=summary,
        sections=tuple(sections),
    )


def balance_sheet_payload(sheet: BalanceSheet) -> ReportPayload:
    summary = (
        ("Total Assets", format_money(sheet.total_assets)),
        ("Total Liabilities", format_money(sheet.total_liabilities)),
        ("Total Equity", format_money(sheet.equity.total_equity)),
        ("Total Liabilities & Equity", format_money(sheet.total_liabilities_equity)),
    )
    sections = (
        ReportSection.from_amounts("Current Assets", sheet.current_assets.to_dict()),
        ReportSection.from_amounts("Fixed Assets", sheet.fixed_assets.to_dict()),
        ReportSection.from_amounts("Current Liabilities", sheet.current_liabilities.to_dict()),
        ReportSection.from_amounts(
            "Long-Term Liabilities", sheet.long_term_liabilities.to_dict()
        ),
        ReportSection.from_amounts("Equity", sheet.equity.to_dict()),
    )
    return ReportPayload(
        title="Balance Sheet",
        as_of=sheet.as_of,
        summary=summary,
        sections=sections,
    )


def cash_flow_payload(statement: CashFlowStatement) -> ReportPayload:
    summary = (
        ("Beginning Cash", format_money(statement.beginning_cash)),
        ("Net Cash Change", format_money(statement.net_cash_change)),
        ("Ending Cash", format_money(statement.ending_cash)),
    )
    sections = (
        ReportSection.from_amounts("Operating Activities", statement.operating.to_dict()),
        ReportSection.from_amounts("Investing Activities", statement.investing.to_dict()),
        ReportSection.from_amounts("Financing Activities", statement.financing.to_dict()),
    )
    return ReportPayload(
        title="Cash Flow Statement",
        period=statement.period,
        summary=summary,
        sections=sections,
    )


def reconciliation_payload(result: ReconciliationResult) -> ReportPayload:
    summary = (
        ("Account", result.account_id),
        ("Statement Balance", format_money(result.statement_balance)),
        ("Matched Total", format_money(result.matched_total)),
        ("Variance", format_money(result.variance)),
        ("Reconciled", "Yes" if result.reconciled else "No"),
    )
    sections = [
        ReportSection(
            title="Matched",
            columns=("Transaction", "Bank Reference", "Date", "Amount", "Confidence"),
            rows=tuple(
                (
                    pair.ledger.id,
                    pair.bank_line.external_id or "",
                    pair.bank_line.date.isoformat(),
                    format_money(pair.ledger.cash_amount),
                    f"{pair.confidence:.2f}",
                )
                for pair in result.matched
            ),
        ),
        ReportSection(
            title="Unmatched Book Transactions",
            columns=("Transaction", "Date", "Description", "Amount"),
            rows=tuple(
                (tx.id, tx.date.isoformat(), tx.description, format_money(tx.cash_amount))
                for tx in result.unmatched_book
            ),
        ),
        ReportSection(
            title="Unmatched Bank Transactions",
            columns=("Bank Reference", "Date", "Description", "Amount"),
            rows=tuple(
                (
                    line.external_id or "",
                    line.date.isoformat(),
                    line.description,
                    format_money(line.amount),
                )
                for line in result.unmatched_bank
            ),
        ),
    ]
    if result.recommendations:
        sections.append(
            ReportSection(
                title="Recommendations",
                columns=("Recommendation",),
                rows=tuple((item,) for item in result.recommendations),
            )
        )
    return ReportPayload(
        title="Bank Reconciliation",
        as_of=result.statement_date,
        summary=summary,
        sections=tuple(sections),
    )


def tax_form_payload(run: TaxFormRun) -> ReportPayload:
    summary = (
        ("Tax Year", str(run.year)),
        ("Total Vendors", str(run.summary.total_vendors)),
        ("1099 Forms Required", str(run.summary.total_1099_required)),
        ("Missing Tax Id", str(run.summary.missing_tax_id)),
        ("Total Paid", format_money(run.summary.total_amount)),
    )
    sections = (
        ReportSection(
            title="Vendors",
            columns=("Vendor", "Name", "Total Payments", "Form Required", "Missing Tax Id"),
            rows=tuple(
                (
                    v.vendor_id,
                    v.vendor_name,
                    format_money(v.total_payments),
                    "Yes" if v.form_required else "No",
                    "Yes" if v.missing_tax_id else "No",
                )
                for v in run.vendors
            ),
        ),
    )
    return ReportPayload(
        title=f"1099 Summary {run.year}",
        period=DateRange.calendar_year(run.year),
        summary=summary,
        sections=sections,
    )

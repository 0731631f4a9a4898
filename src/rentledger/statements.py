"""Financial statement generation: profit & loss, balance sheet, cash flow.

All statements are computed from store reads only; nothing here mutates
ledger data, so concurrent requests need no coordination. Figures are exact
Decimals. Percentages are the only values rounded here.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

import structlog

from rentledger.aggregator import ZERO, CategoryAggregator
from rentledger.errors import ConsistencyError, RentLedgerError, ValidationError
from rentledger.models import (
    Category,
    DateRange,
    MaintenanceCost,
    ReportScope,
    Transaction,
    TransactionType,
    to_date,
)
from rentledger.postings import POSTING_RULES, BalanceLine, LineBalances, compute_balances
from rentledger.store import LedgerStore, RecordKind, RecordQuery

logger = structlog.get_logger(__name__)

PERCENT = Decimal("0.01")


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Return numerator as a percentage of denominator; 0 when denominator is 0."""
    if denominator == 0:
        return Decimal("0.00")
    return (numerator / denominator * 100).quantize(PERCENT, rounding=ROUND_HALF_UP)


class ComparisonBasis(str, Enum):
    """Shifted windows a P&L can be compared against."""

    PREVIOUS_MONTH = "previous_month"
    PREVIOUS_YEAR = "previous_year"


# === Profit & Loss ===


@dataclass
class Revenue:
    rental_income: Decimal = ZERO
    late_fees: Decimal = ZERO
    parking: Decimal = ZERO
    pet_fees: Decimal = ZERO
    other_income: Decimal = ZERO

    @property
    def total_revenue(self) -> Decimal:
        return (
            self.rental_income
            + self.late_fees
            + self.parking
            + self.pet_fees
            + self.other_income
        )

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "rental_income": self.rental_income,
            "late_fees": self.late_fees,
            "parking": self.parking,
            "pet_fees": self.pet_fees,
            "other_income": self.other_income,
            "total_revenue": self.total_revenue,
        }


@dataclass
class Expenses:
    maintenance: Decimal = ZERO
    utilities: Decimal = ZERO
    insurance: Decimal = ZERO
    property_tax: Decimal = ZERO
    management_fees: Decimal = ZERO
    marketing: Decimal = ZERO
    legal: Decimal = ZERO
    accounting: Decimal = ZERO
    repairs: Decimal = ZERO
    capital_improvements: Decimal = ZERO
    other_expenses: Decimal = ZERO

    @property
    def total_expenses(self) -> Decimal:
        return sum(self._lines().values(), ZERO)

    @property
    def direct_costs(self) -> Decimal:
        """Costs of keeping units rentable: upkeep, utilities, repairs."""
        return self.maintenance + self.utilities + self.repairs

    def _lines(self) -> dict[str, Decimal]:
        return {
            "maintenance": self.maintenance,
            "utilities": self.utilities,
            "insurance": self.insurance,
            "property_tax": self.property_tax,
            "management_fees": self.management_fees,
            "marketing": self.marketing,
            "legal": self.legal,
            "accounting": self.accounting,
            "repairs": self.repairs,
            "capital_improvements": self.capital_improvements,
            "other_expenses": self.other_expenses,
        }

    def to_dict(self) -> dict[str, Decimal]:
        return {**self._lines(), "total_expenses": self.total_expenses}


@dataclass
class FinancialExpenses:
    mortgage_interest: Decimal = ZERO
    loan_fees: Decimal = ZERO

    @property
    def total_financial_expenses(self) -> Decimal:
        return self.mortgage_interest + self.loan_fees

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "mortgage_interest": self.mortgage_interest,
            "loan_fees": self.loan_fees,
            "total_financial_expenses": self.total_financial_expenses,
        }


@dataclass
class Margins:
    gross_margin: Decimal
    operating_margin: Decimal
    net_margin: Decimal

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "gross_margin": self.gross_margin,
            "operating_margin": self.operating_margin,
            "net_margin": self.net_margin,
        }


@dataclass
class MetricChange:
    current: Decimal
    previous: Decimal

    @property
    def change(self) -> Decimal:
        return self.current - self.previous

    @property
    def percent_change(self) -> Decimal:
        return percentage(self.change, self.previous)

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "current": self.current,
            "previous": self.previous,
            "change": self.change,
            "percent_change": self.percent_change,
        }


@dataclass
class PeriodComparison:
    basis: ComparisonBasis
    previous_period: DateRange
    metrics: dict[str, MetricChange]

    def to_dict(self) -> dict[str, Any]:
        return {
            "basis": self.basis.value,
            "previous_period": self.previous_period.to_dict(),
            "metrics": {name: m.to_dict() for name, m in self.metrics.items()},
        }


@dataclass
class BuildingResult:
    building_id: str
    total_revenue: Decimal
    total_expenses: Decimal

    @property
    def net_operating_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    def to_dict(self) -> dict[str, Any]:
        return {
            "building_id": self.building_id,
            "total_revenue": self.total_revenue,
            "total_expenses": self.total_expenses,
            "net_operating_income": self.net_operating_income,
        }


@dataclass
class ProfitLossStatement:
    """Profit & loss for a period."""

    period: DateRange
    scope: ReportScope
    revenue: Revenue
    expenses: Expenses
    financial_expenses: FinancialExpenses
    comparison: PeriodComparison | None = None
    buildings: list[BuildingResult] = field(default_factory=list)

    @property
    def total_revenue(self) -> Decimal:
        return self.revenue.total_revenue

    @property
    def total_expenses(self) -> Decimal:
        return self.expenses.total_expenses

    @property
    def gross_profit(self) -> Decimal:
        return self.total_revenue - self.expenses.direct_costs

    @property
    def net_operating_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def net_income(self) -> Decimal:
        return self.net_operating_income - self.financial_expenses.total_financial_expenses

    @property
    def margins(self) -> Margins:
        return Margins(
            gross_margin=percentage(self.gross_profit, self.total_revenue),
            operating_margin=percentage(self.net_operating_income, self.total_revenue),
            net_margin=percentage(self.net_income, self.total_revenue),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "scope": self.scope.to_dict(),
            "revenue": self.revenue.to_dict(),
            "expenses": self.expenses.to_dict(),
            "net_operating_income": self.net_operating_income,
            "financial_expenses": self.financial_expenses.to_dict(),
            "net_income": self.net_income,
            "margins": self.margins.to_dict(),
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "buildings": [b.to_dict() for b in self.buildings],
        }


# === Balance Sheet ===


@dataclass
class CurrentAssets:
    cash: Decimal
    accounts_receivable: Decimal
    security_deposits: Decimal
    prepaid_expenses: Decimal

    @property
    def total_current_assets(self) -> Decimal:
        return self.cash + self.accounts_receivable + self.security_deposits + self.prepaid_expenses

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "cash": self.cash,
            "accounts_receivable": self.accounts_receivable,
            "security_deposits": self.security_deposits,
            "prepaid_expenses": self.prepaid_expenses,
            "total_current_assets": self.total_current_assets,
        }


@dataclass
class FixedAssets:
    property: Decimal
    equipment: Decimal
    accumulated_depreciation: Decimal

    @property
    def total_fixed_assets(self) -> Decimal:
        return self.property + self.equipment - self.accumulated_depreciation

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "property": self.property,
            "equipment": self.equipment,
            "accumulated_depreciation": self.accumulated_depreciation,
            "total_fixed_assets": self.total_fixed_assets,
        }


@dataclass
class CurrentLiabilities:
    accounts_payable: Decimal
    security_deposits_liability: Decimal
    accrued_expenses: Decimal
    current_portion_debt: Decimal

    @property
    def total_current_liabilities(self) -> Decimal:
        return (
            self.accounts_payable
            + self.security_deposits_liability
            + self.accrued_expenses
            + self.current_portion_debt
        )

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "accounts_payable": self.accounts_payable,
            "security_deposits_liability": self.security_deposits_liability,
            "accrued_expenses": self.accrued_expenses,
            "current_portion_debt": self.current_portion_debt,
            "total_current_liabilities": self.total_current_liabilities,
        }


@dataclass
class LongTermLiabilities:
    mortgages: Decimal
    loans: Decimal

    @property
    def total_long_term_liabilities(self) -> Decimal:
        return self.mortgages + self.loans

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "mortgages": self.mortgages,
            "loans": self.loans,
            "total_long_term_liabilities": self.total_long_term_liabilities,
        }


@dataclass
class Equity:
    owner_equity: Decimal
    retained_earnings: Decimal
    current_year_earnings: Decimal

    @property
    def total_equity(self) -> Decimal:
        return self.owner_equity + self.retained_earnings + self.current_year_earnings

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "owner_equity": self.owner_equity,
            "retained_earnings": self.retained_earnings,
            "current_year_earnings": self.current_year_earnings,
            "total_equity": self.total_equity,
        }


@dataclass
class BalanceSheet:
    """Point-in-time snapshot of assets, liabilities and equity."""

    as_of: date
    scope: ReportScope
    current_assets: CurrentAssets
    fixed_assets: FixedAssets
    current_liabilities: CurrentLiabilities
    long_term_liabilities: LongTermLiabilities
    equity: Equity

    @property
    def total_assets(self) -> Decimal:
        return self.current_assets.total_current_assets + self.fixed_assets.total_fixed_assets

    @property
    def total_liabilities(self) -> Decimal:
        return (
            self.current_liabilities.total_current_liabilities
            + self.long_term_liabilities.total_long_term_liabilities
        )

    @property
    def total_liabilities_equity(self) -> Decimal:
        return self.total_liabilities + self.equity.total_equity

    @property
    def is_balanced(self) -> bool:
        return self.total_assets == self.total_liabilities_equity

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "scope": self.scope.to_dict(),
            "assets": {
                "current_assets": self.current_assets.to_dict(),
                "fixed_assets": self.fixed_assets.to_dict(),
                "total_assets": self.total_assets,
            },
            "liabilities": {
                "current_liabilities": self.current_liabilities.to_dict(),
                "long_term_liabilities": self.long_term_liabilities.to_dict(),
                "total_liabilities": self.total_liabilities,
            },
            "equity": self.equity.to_dict(),
            "total_liabilities_equity": self.total_liabilities_equity,
        }


# === Cash Flow ===


@dataclass
class OperatingActivities:
    cash_from_operations: Decimal = ZERO
    accounts_receivable_change: Decimal = ZERO
    accounts_payable_change: Decimal = ZERO

    @property
    def net_operating_cash(self) -> Decimal:
        # Working-capital changes are reported alongside; cash is direct-method
        return self.cash_from_operations

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "cash_from_operations": self.cash_from_operations,
            "accounts_receivable_change": self.accounts_receivable_change,
            "accounts_payable_change": self.accounts_payable_change,
            "net_operating_cash": self.net_operating_cash,
        }


@dataclass
class InvestingActivities:
    capital_expenditures: Decimal = ZERO
    equipment_purchases: Decimal = ZERO

    @property
    def net_investing_cash(self) -> Decimal:
        return -(self.capital_expenditures + self.equipment_purchases)

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "capital_expenditures": self.capital_expenditures,
            "equipment_purchases": self.equipment_purchases,
            "net_investing_cash": self.net_investing_cash,
        }


@dataclass
class FinancingActivities:
    loan_proceeds: Decimal = ZERO
    loan_payments: Decimal = ZERO
    owner_contributions: Decimal = ZERO
    owner_distributions: Decimal = ZERO

    @property
    def net_financing_cash(self) -> Decimal:
        return (
            self.loan_proceeds
            - self.loan_payments
            + self.owner_contributions
            - self.owner_distributions
        )

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "loan_proceeds": self.loan_proceeds,
            "loan_payments": self.loan_payments,
            "owner_contributions": self.owner_contributions,
            "owner_distributions": self.owner_distributions,
            "net_financing_cash": self.net_financing_cash,
        }


@dataclass
class CashFlowStatement:
    """Cash movements over a period, grouped by activity."""

    period: DateRange
    scope: ReportScope
    operating: OperatingActivities
    investing: InvestingActivities
    financing: FinancingActivities
    beginning_cash: Decimal

    @property
    def net_cash_change(self) -> Decimal:
        return (
            self.operating.net_operating_cash
            + self.investing.net_investing_cash
            + self.financing.net_financing_cash
        )

    @property
    def ending_cash(self) -> Decimal:
        return self.beginning_cash + self.net_cash_change

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "scope": self.scope.to_dict(),
            "operating_activities": self.operating.to_dict(),
            "investing_activities": self.investing.to_dict(),
            "financing_activities": self.financing.to_dict(),
            "net_cash_change": self.net_cash_change,
            "beginning_cash": self.beginning_cash,
            "ending_cash": self.ending_cash,
        }


_CAPITAL_EXPENDITURE = {Category.PROPERTY_ACQUISITION, Category.CAPITAL_IMPROVEMENT}
_DEBT = {Category.MORTGAGE, Category.LOAN, Category.CREDIT_LINE}


def _settled_on(cost: MaintenanceCost) -> date | None:
    """Date a maintenance cost left cash, or None while unpaid."""
    if cost.paid_date is None:
        return None
    return max(cost.completed_date, cost.paid_date)


class StatementBuilder:
    """Builds statements for a period and scope from the ledger store.

    Unknown building or unit ids are not errors: they produce zero-valued
    statements, because an unmanaged scope simply has no data.
    """

    def __init__(
        self,
        store: LedgerStore,
        aggregator: CategoryAggregator | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._store = store
        self._today = today
        self._aggregator = aggregator or CategoryAggregator(today=today)
        self._logger = logger.bind(component="statement_builder")

    @property
    def aggregator(self) -> CategoryAggregator:
        return self._aggregator

    def _load(
        self, kind: RecordKind, start: date | None = None, end: date | None = None
    ) -> list[Any]:
        return self._aggregator.load(self._store, RecordQuery(kind=kind, start=start, end=end))

    def _resolve_period(self, period: DateRange | None, scope: ReportScope) -> DateRange:
        if period is not None:
            if not isinstance(period, DateRange):
                raise ValidationError("period must be a DateRange", details={"value": repr(period)})
            return period
        return scope.date_range or DateRange.year_to_date(self._today())

    # --- Profit & Loss ---

    def generate_profit_loss(
        self,
        period: DateRange | None = None,
        scope: ReportScope | None = None,
        compare_with: ComparisonBasis | str | None = None,
        include_building_breakdown: bool = False,
    ) -> ProfitLossStatement:
        """Generate a profit & loss statement.

        Args:
            period: Inclusive reporting window. Defaults to year to date.
            scope: Buildings/units to restrict to. Defaults to the portfolio.
            compare_with: Optional shifted window to compare totals against.
            include_building_breakdown: Add per-building revenue, expenses and NOI.

        Returns:
            The statement.
        """
        scope = scope or ReportScope()
        period = self._resolve_period(period, scope)
        basis = self._parse_basis(compare_with)

        self._logger.info(
            "generating_profit_loss",
            period=period.to_dict(),
            buildings=list(scope.building_ids),
            units=list(scope.unit_ids),
        )

        try:
            transactions, costs = self._period_records(period, scope)
            statement = ProfitLossStatement(
                period=period,
                scope=scope,
                revenue=self._revenue(transactions),
                expenses=self._expenses(transactions, costs),
                financial_expenses=self._financial_expenses(transactions),
            )

            if basis is not None:
                statement.comparison = self._compare(statement, basis, scope)

            if include_building_breakdown:
                statement.buildings = self._building_breakdown(transactions, costs, scope)
        except RentLedgerError:
            raise
        except Exception as e:
            self._logger.error(
                "profit_loss_failed",
                period=period.to_dict(),
                scope=scope.to_dict(),
                error=str(e),
            )
            raise

        self._logger.info(
            "profit_loss_generated",
            total_revenue=str(statement.total_revenue),
            total_expenses=str(statement.total_expenses),
            net_income=str(statement.net_income),
        )
        return statement

    def _parse_basis(self, value: ComparisonBasis | str | None) -> ComparisonBasis | None:
        if value is None:
            return None
        try:
            return ComparisonBasis(value)
        except ValueError as e:
            raise ValidationError(
                "compare_with must be previous_month or previous_year",
                details={"value": value},
            ) from e

    def _period_records(
        self, period: DateRange, scope: ReportScope
    ) -> tuple[list[Transaction], list[MaintenanceCost]]:
        scoped = scope.with_range(period)
        transactions = self._aggregator.scope_filter(
            self._load(RecordKind.TRANSACTION, period.start, period.end), scoped
        )
        costs = self._aggregator.scope_filter(
            self._load(RecordKind.MAINTENANCE_COST, period.start, period.end), scoped
        )
        return transactions, costs

    def _revenue(self, transactions: list[Transaction]) -> Revenue:
        sums = self._aggregator.aggregate(transactions, type_filter=TransactionType.INCOME)
        return Revenue(
            rental_income=sums[Category.RENT_INCOME],
            late_fees=sums[Category.LATE_FEE],
            parking=sums[Category.PARKING],
            pet_fees=sums[Category.PET_FEE],
            other_income=sums[Category.OTHER],
        )

    def _expenses(
        self, transactions: list[Transaction], costs: list[MaintenanceCost]
    ) -> Expenses:
        sums = self._aggregator.aggregate(transactions, type_filter=TransactionType.EXPENSE)
        return Expenses(
            maintenance=sums[Category.MAINTENANCE],
            utilities=sums[Category.UTILITIES],
            insurance=sums[Category.INSURANCE],
            property_tax=sums[Category.PROPERTY_TAX],
            management_fees=sums[Category.MANAGEMENT_FEE],
            marketing=sums[Category.MARKETING],
            legal=sums[Category.LEGAL],
            accounting=sums[Category.ACCOUNTING],
            repairs=sum((c.actual_cost for c in costs), ZERO),
            capital_improvements=sums[Category.CAPITAL_IMPROVEMENT],
            other_expenses=sums[Category.OTHER],
        )

    def _financial_expenses(self, transactions: list[Transaction]) -> FinancialExpenses:
        sums = self._aggregator.aggregate(transactions, type_filter=TransactionType.EXPENSE)
        return FinancialExpenses(
            mortgage_interest=sums[Category.MORTGAGE_INTEREST],
            loan_fees=sums[Category.LOAN_FEES],
        )

    def _compare(
        self,
        statement: ProfitLossStatement,
        basis: ComparisonBasis,
        scope: ReportScope,
    ) -> PeriodComparison:
        if basis == ComparisonBasis.PREVIOUS_MONTH:
            previous_period = statement.period.previous_month()
        else:
            previous_period = statement.period.previous_year()

        transactions, costs = self._period_records(previous_period, scope)
        previous = ProfitLossStatement(
            period=previous_period,
            scope=scope,
            revenue=self._revenue(transactions),
            expenses=self._expenses(transactions, costs),
            financial_expenses=self._financial_expenses(transactions),
        )

        metrics = {
            name: MetricChange(
                current=getattr(statement, name), previous=getattr(previous, name)
            )
            for name in ("total_revenue", "total_expenses", "net_operating_income", "net_income")
        }
        return PeriodComparison(basis=basis, previous_period=previous_period, metrics=metrics)

    def _building_breakdown(
        self,
        transactions: list[Transaction],
        costs: list[MaintenanceCost],
        scope: ReportScope,
    ) -> list[BuildingResult]:
        if scope.building_ids:
            building_ids = list(scope.building_ids)
        else:
            seen = {r.building_id for r in [*transactions, *costs] if r.building_id}
            building_ids = sorted(seen)

        results = []
        for building_id in building_ids:
            building_txs = [t for t in transactions if t.building_id == building_id]
            building_costs = [c for c in costs if c.building_id == building_id]
            results.append(
                BuildingResult(
                    building_id=building_id,
                    total_revenue=self._revenue(building_txs).total_revenue,
                    total_expenses=self._expenses(building_txs, building_costs).total_expenses,
                )
            )
        return results

    # --- Balance Sheet ---

    def generate_balance_sheet(
        self,
        as_of: date | None = None,
        scope: ReportScope | None = None,
    ) -> BalanceSheet:
        """Generate a balance sheet as of a date.

        Raises:
            ConsistencyError: If total assets differ from liabilities plus equity.
        """
        scope = scope or ReportScope()
        as_of = to_date(as_of, "as_of") if as_of is not None else self._today()

        self._logger.info(
            "generating_balance_sheet",
            as_of=as_of.isoformat(),
            buildings=list(scope.building_ids),
            units=list(scope.unit_ids),
        )

        try:
            balances = self._balances(as_of, scope)
        except RentLedgerError:
            raise
        except Exception as e:
            self._logger.error(
                "balance_sheet_failed",
                as_of=as_of.isoformat(),
                scope=scope.to_dict(),
                error=str(e),
            )
            raise

        sheet = BalanceSheet(
            as_of=as_of,
            scope=scope,
            current_assets=CurrentAssets(
                cash=balances[BalanceLine.CASH],
                accounts_receivable=balances[BalanceLine.ACCOUNTS_RECEIVABLE],
                security_deposits=balances[BalanceLine.SECURITY_DEPOSITS],
                prepaid_expenses=balances[BalanceLine.PREPAID_EXPENSES],
            ),
            fixed_assets=FixedAssets(
                property=balances[BalanceLine.PROPERTY],
                equipment=balances[BalanceLine.EQUIPMENT],
                accumulated_depreciation=-balances[BalanceLine.ACCUMULATED_DEPRECIATION],
            ),
            current_liabilities=CurrentLiabilities(
                accounts_payable=balances[BalanceLine.ACCOUNTS_PAYABLE],
                security_deposits_liability=balances[BalanceLine.SECURITY_DEPOSITS_LIABILITY],
                accrued_expenses=balances[BalanceLine.ACCRUED_EXPENSES],
                current_portion_debt=balances[BalanceLine.CURRENT_PORTION_DEBT],
            ),
            long_term_liabilities=LongTermLiabilities(
                mortgages=balances[BalanceLine.MORTGAGES],
                loans=balances[BalanceLine.LOANS],
            ),
            equity=Equity(
                owner_equity=balances[BalanceLine.OWNER_EQUITY],
                retained_earnings=balances.prior_earnings,
                current_year_earnings=balances.current_earnings,
            ),
        )

        if not sheet.is_balanced:
            self._logger.error(
                "balance_sheet_unbalanced",
                as_of=as_of.isoformat(),
                total_assets=str(sheet.total_assets),
                total_liabilities_equity=str(sheet.total_liabilities_equity),
            )
            raise ConsistencyError(
                "Balance sheet does not balance",
                details={
                    "as_of": as_of.isoformat(),
                    "scope": scope.to_dict(),
                    "total_assets": str(sheet.total_assets),
                    "total_liabilities": str(sheet.total_liabilities),
                    "total_equity": str(sheet.equity.total_equity),
                },
            )

        self._logger.info(
            "balance_sheet_generated",
            as_of=as_of.isoformat(),
            total_assets=str(sheet.total_assets),
        )
        return sheet

    def _balances(self, as_of: date, scope: ReportScope) -> LineBalances:
        scoped = scope.with_range(DateRange(start=date.min, end=as_of))
        return compute_balances(
            as_of,
            self._aggregator.scope_filter(self._load(RecordKind.TRANSACTION, end=as_of), scoped),
            self._aggregator.scope_filter(
                self._load(RecordKind.MAINTENANCE_COST, end=as_of), scoped
            ),
            self._aggregator.scope_filter(self._load(RecordKind.RENT_CHARGE, end=as_of), scoped),
            self._aggregator.scope_filter(
                self._load(RecordKind.VENDOR_INVOICE, end=as_of), scoped
            ),
        )

    # --- Cash Flow ---

    def generate_cash_flow(
        self,
        period: DateRange | None = None,
        scope: ReportScope | None = None,
    ) -> CashFlowStatement:
        """Generate a cash flow statement for a period."""
        scope = scope or ReportScope()
        period = self._resolve_period(period, scope)

        self._logger.info(
            "generating_cash_flow",
            period=period.to_dict(),
            buildings=list(scope.building_ids),
            units=list(scope.unit_ids),
        )

        try:
            closing = self._balances(period.end, scope)
            if period.start > date.min:
                opening = self._balances(period.start - timedelta(days=1), scope)
                beginning_cash = opening[BalanceLine.CASH]
                opening_receivable = opening[BalanceLine.ACCOUNTS_RECEIVABLE]
                opening_payable = (
                    opening[BalanceLine.ACCOUNTS_PAYABLE] + opening[BalanceLine.ACCRUED_EXPENSES]
                )
            else:
                beginning_cash = opening_receivable = opening_payable = ZERO

            transactions, _ = self._period_records(period, scope)
            costs = self._aggregator.scope_filter(
                self._load(RecordKind.MAINTENANCE_COST, end=period.end),
                scope.with_range(DateRange(start=date.min, end=period.end)),
            )
        except RentLedgerError:
            raise
        except Exception as e:
            self._logger.error(
                "cash_flow_failed",
                period=period.to_dict(),
                scope=scope.to_dict(),
                error=str(e),
            )
            raise

        operating = OperatingActivities(
            accounts_receivable_change=closing[BalanceLine.ACCOUNTS_RECEIVABLE] - opening_receivable,
            accounts_payable_change=(
                closing[BalanceLine.ACCOUNTS_PAYABLE]
                + closing[BalanceLine.ACCRUED_EXPENSES]
                - opening_payable
            ),
        )
        investing = InvestingActivities()
        financing = FinancingActivities()

        for tx in transactions:
            if POSTING_RULES[tx.category][0] != BalanceLine.CASH:
                continue
            inflow = tx.type == TransactionType.INCOME
            if tx.category in _CAPITAL_EXPENDITURE:
                investing.capital_expenditures -= tx.cash_amount
            elif tx.category == Category.EQUIPMENT:
                investing.equipment_purchases -= tx.cash_amount
            elif tx.category in _DEBT:
                if inflow:
                    financing.loan_proceeds += tx.amount
                else:
                    financing.loan_payments += tx.amount
            elif tx.category == Category.OWNER_EQUITY:
                if inflow:
                    financing.owner_contributions += tx.amount
                else:
                    financing.owner_distributions += tx.amount
            else:
                operating.cash_from_operations += tx.cash_amount

        for cost in costs:
            settled = _settled_on(cost)
            if settled is not None and period.contains(settled):
                operating.cash_from_operations -= cost.actual_cost

        statement = CashFlowStatement(
            period=period,
            scope=scope,
            operating=operating,
            investing=investing,
            financing=financing,
            beginning_cash=beginning_cash,
        )

        if statement.ending_cash != closing[BalanceLine.CASH]:
            raise ConsistencyError(
                "Cash flow does not reconcile to closing cash",
                details={
                    "period": period.to_dict(),
                    "scope": scope.to_dict(),
                    "ending_cash": str(statement.ending_cash),
                    "closing_cash": str(closing[BalanceLine.CASH]),
                },
            )

        self._logger.info(
            "cash_flow_generated",
            net_cash_change=str(statement.net_cash_change),
            ending_cash=str(statement.ending_cash),
        )
        return statement

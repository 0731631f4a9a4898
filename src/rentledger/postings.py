"""Balance sheet posting rules for ledger categories.

Each category maps to a ``(primary, counter)`` pair of balance lines. A
transaction's signed cash effect ``s`` is added to the primary line; the
counter line receives ``+s`` when it is a claim (liability or equity) and
``-s`` when it is an asset. Every posting therefore changes assets and
claims by the same amount, which is what keeps the balance sheet balanced.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from rentledger.models import (
    Category,
    MaintenanceCost,
    RentCharge,
    Transaction,
    VendorInvoice,
)


class Side(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"


class BalanceLine(str, Enum):
    """Lines of the balance sheet."""

    CASH = "cash"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    SECURITY_DEPOSITS = "security_deposits"
    PREPAID_EXPENSES = "prepaid_expenses"
    PROPERTY = "property"
    EQUIPMENT = "equipment"
    # Stored as a negative asset balance; reported as a positive figure
    ACCUMULATED_DEPRECIATION = "accumulated_depreciation"

    ACCOUNTS_PAYABLE = "accounts_payable"
    SECURITY_DEPOSITS_LIABILITY = "security_deposits_liability"
    ACCRUED_EXPENSES = "accrued_expenses"
    CURRENT_PORTION_DEBT = "current_portion_debt"
    MORTGAGES = "mortgages"
    LOANS = "loans"

    OWNER_EQUITY = "owner_equity"
    EARNINGS = "earnings"

    @property
    def side(self) -> Side:
        return LINE_SIDES[self]


LINE_SIDES: dict[BalanceLine, Side] = {
    BalanceLine.CASH: Side.ASSET,
    BalanceLine.ACCOUNTS_RECEIVABLE: Side.ASSET,
    BalanceLine.SECURITY_DEPOSITS: Side.ASSET,
    BalanceLine.PREPAID_EXPENSES: Side.ASSET,
    BalanceLine.PROPERTY: Side.ASSET,
    BalanceLine.EQUIPMENT: Side.ASSET,
    BalanceLine.ACCUMULATED_DEPRECIATION: Side.ASSET,
    BalanceLine.ACCOUNTS_PAYABLE: Side.LIABILITY,
    BalanceLine.SECURITY_DEPOSITS_LIABILITY: Side.LIABILITY,
    BalanceLine.ACCRUED_EXPENSES: Side.LIABILITY,
    BalanceLine.CURRENT_PORTION_DEBT: Side.LIABILITY,
    BalanceLine.MORTGAGES: Side.LIABILITY,
    BalanceLine.LOANS: Side.LIABILITY,
    BalanceLine.OWNER_EQUITY: Side.EQUITY,
    BalanceLine.EARNINGS: Side.EQUITY,
}

_OPERATING = (BalanceLine.CASH, BalanceLine.EARNINGS)

POSTING_RULES: dict[Category, tuple[BalanceLine, BalanceLine]] = {
    Category.RENT_INCOME: _OPERATING,
    Category.LATE_FEE: _OPERATING,
    Category.PARKING: _OPERATING,
    Category.PET_FEE: _OPERATING,
    Category.MAINTENANCE: _OPERATING,
    Category.UTILITIES: _OPERATING,
    Category.INSURANCE: _OPERATING,
    Category.PROPERTY_TAX: _OPERATING,
    Category.MANAGEMENT_FEE: _OPERATING,
    Category.MARKETING: _OPERATING,
    Category.LEGAL: _OPERATING,
    Category.ACCOUNTING: _OPERATING,
    Category.CAPITAL_IMPROVEMENT: _OPERATING,
    Category.MORTGAGE_INTEREST: _OPERATING,
    Category.LOAN_FEES: _OPERATING,
    Category.OTHER: _OPERATING,
    # Deposits are held apart from operating cash
    Category.SECURITY_DEPOSIT: (
        BalanceLine.SECURITY_DEPOSITS,
        BalanceLine.SECURITY_DEPOSITS_LIABILITY,
    ),
    Category.PREPAID_EXPENSE: (BalanceLine.CASH, BalanceLine.PREPAID_EXPENSES),
    Category.PROPERTY_ACQUISITION: (BalanceLine.CASH, BalanceLine.PROPERTY),
    Category.EQUIPMENT: (BalanceLine.CASH, BalanceLine.EQUIPMENT),
    Category.DEPRECIATION: (BalanceLine.ACCUMULATED_DEPRECIATION, BalanceLine.EARNINGS),
    Category.MORTGAGE: (BalanceLine.CASH, BalanceLine.MORTGAGES),
    Category.LOAN: (BalanceLine.CASH, BalanceLine.LOANS),
    Category.CREDIT_LINE: (BalanceLine.CASH, BalanceLine.CURRENT_PORTION_DEBT),
    Category.OWNER_EQUITY: (BalanceLine.CASH, BalanceLine.OWNER_EQUITY),
}


@dataclass
class LineBalances:
    """Running balances per line, with earnings split by fiscal year."""

    fiscal_year_start: date
    lines: dict[BalanceLine, Decimal] = field(
        default_factory=lambda: {line: Decimal("0") for line in BalanceLine}
    )
    prior_earnings: Decimal = Decimal("0")
    current_earnings: Decimal = Decimal("0")

    def post(
        self,
        primary: BalanceLine,
        counter: BalanceLine,
        amount: Decimal,
        on: date,
    ) -> None:
        """Post a signed amount to a pair of lines."""
        self._add(primary, amount, on)
        if counter.side == Side.ASSET:
            self._add(counter, -amount, on)
        else:
            self._add(counter, amount, on)

    def reclassify(
        self,
        increase: BalanceLine,
        decrease: BalanceLine,
        amount: Decimal,
        on: date,
    ) -> None:
        """Move an amount between two claim lines (e.g. earnings to a payable)."""
        self._add(increase, amount, on)
        self._add(decrease, -amount, on)

    def _add(self, line: BalanceLine, amount: Decimal, on: date) -> None:
        self.lines[line] += amount
        if line == BalanceLine.EARNINGS:
            if on < self.fiscal_year_start:
                self.prior_earnings += amount
            else:
                self.current_earnings += amount

    def __getitem__(self, line: BalanceLine) -> Decimal:
        return self.lines[line]

    def total(self, side: Side) -> Decimal:
        return sum(
            (amount for line, amount in self.lines.items() if line.side == side),
            Decimal("0"),
        )


def post_transaction(balances: LineBalances, tx: Transaction) -> None:
    primary, counter = POSTING_RULES[tx.category]
    balances.post(primary, counter, tx.cash_amount, tx.date)


def compute_balances(
    as_of: date,
    transactions: Iterable[Transaction],
    maintenance_costs: Iterable[MaintenanceCost] = (),
    rent_charges: Iterable[RentCharge] = (),
    vendor_invoices: Iterable[VendorInvoice] = (),
) -> LineBalances:
    """Compute every balance line as of a date.

    Records dated after ``as_of`` are ignored. Open rent charges become
    receivables, open vendor invoices become payables, and maintenance costs
    are paid from cash or accrued.
    """
    balances = LineBalances(fiscal_year_start=date(as_of.year, 1, 1))

    for tx in transactions:
        if tx.date <= as_of:
            post_transaction(balances, tx)

    for cost in maintenance_costs:
        if cost.completed_date > as_of:
            continue
        if cost.is_paid_by(as_of):
            balances.post(
                BalanceLine.CASH, BalanceLine.EARNINGS, -cost.actual_cost, cost.completed_date
            )
        else:
            balances.reclassify(
                BalanceLine.ACCRUED_EXPENSES,
                BalanceLine.EARNINGS,
                cost.actual_cost,
                cost.completed_date,
            )

    for charge in rent_charges:
        if charge.is_open_on(as_of):
            balances.post(
                BalanceLine.ACCOUNTS_RECEIVABLE,
                BalanceLine.EARNINGS,
                charge.amount,
                charge.due_date,
            )

    for invoice in vendor_invoices:
        if invoice.is_open_on(as_of):
            balances.reclassify(
                BalanceLine.ACCOUNTS_PAYABLE,
                BalanceLine.EARNINGS,
                invoice.amount,
                invoice.issued_date,
            )

    return balances


def cash_balance(
    as_of: date,
    transactions: Iterable[Transaction],
    maintenance_costs: Iterable[MaintenanceCost] = (),
) -> Decimal:
    """Cash on hand as of a date."""
    return compute_balances(as_of, transactions, maintenance_costs)[BalanceLine.CASH]

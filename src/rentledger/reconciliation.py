"""Bank reconciliation: match bank statement lines to ledger transactions.

Matching is a greedy single pass over ledger transactions in store order.
Each ledger transaction takes the best-scoring remaining bank line, with
ties going to the line seen first. This is deterministic but not globally
optimal.
"""

import asyncio
from collections import Counter
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from rentledger.config import get_settings
from rentledger.errors import NotFoundError, ValidationError
from rentledger.models import BankStatementLine, Transaction, to_date, to_money
from rentledger.store import LedgerStore, RecordKind, RecordQuery

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MatchedPair:
    """A ledger transaction matched to a bank line."""

    ledger: Transaction
    bank_line: BankStatementLine
    confidence: float


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run.

    Unmatched items are a normal outcome that needs human follow-up.
    """

    account_id: str
    statement_date: date
    statement_balance: Decimal
    matched: list[MatchedPair] = field(default_factory=list)
    unmatched_book: list[Transaction] = field(default_factory=list)
    unmatched_bank: list[BankStatementLine] = field(default_factory=list)
    variance: Decimal = Decimal("0")
    reconciled: bool = False
    recommendations: list[str] = field(default_factory=list)

    @property
    def matched_total(self) -> Decimal:
        return sum((pair.ledger.cash_amount for pair in self.matched), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "statement_date": self.statement_date.isoformat(),
            "statement_balance": self.statement_balance,
            "matched": [
                {
                    "transaction_id": pair.ledger.id,
                    "external_id": pair.bank_line.external_id,
                    "amount": pair.ledger.cash_amount,
                    "confidence": pair.confidence,
                }
                for pair in self.matched
            ],
            "unmatched_book": [tx.id for tx in self.unmatched_book],
            "unmatched_bank": [line.external_id for line in self.unmatched_bank],
            "variance": self.variance,
            "reconciled": self.reconciled,
            "recommendations": list(self.recommendations),
        }


class AccountLeases:
    """Exclusive per-account leases for reconciliation runs.

    Runs on the same account wait for each other; runs on different
    accounts proceed independently. A lock is dropped once its last holder
    or waiter is done.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, account_id: str) -> bool:
        lock = self._locks.get(account_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, account_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._users[account_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[account_id] -= 1
            if not self._users[account_id]:
                del self._users[account_id]
                del self._locks[account_id]


def run_key(account_id: str, statement_date: date) -> str:
    """Key that identifies a reconciliation run."""
    return f"{account_id}:{statement_date.isoformat()}"


class ReconciliationMatcher:
    """Reconciles bank statements against unreconciled ledger transactions."""

    def __init__(
        self,
        store: LedgerStore,
        leases: AccountLeases | None = None,
        tolerance: Decimal | None = None,
        window_days: int | None = None,
        exact_confidence: float | None = None,
        window_confidence: float | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._leases = leases if leases is not None else AccountLeases()
        self._tolerance = (
            tolerance
            if tolerance is not None
            else Decimal(str(settings.reconciliation_tolerance))
        )
        self._window_days = (
            window_days if window_days is not None else settings.reconciliation_window_days
        )
        self._exact_confidence = (
            exact_confidence
            if exact_confidence is not None
            else settings.exact_match_confidence
        )
        self._window_confidence = (
            window_confidence
            if window_confidence is not None
            else settings.window_match_confidence
        )
        self._logger = logger.bind(component="reconciliation")

    @property
    def leases(self) -> AccountLeases:
        return self._leases

    def score(self, ledger: Transaction, line: BankStatementLine) -> float | None:
        """Confidence that a bank line records a ledger transaction.

        Returns None when the amounts differ by the tolerance or more, or
        when the dates are further apart than the window. Any non-exact date
        inside the window scores the same.
        """
        if abs(ledger.cash_amount - line.amount) >= self._tolerance:
            return None
        gap = abs((ledger.date - line.date).days)
        if gap > self._window_days:
            return None
        return self._exact_confidence if gap == 0 else self._window_confidence

    def match(
        self,
        ledger: Sequence[Transaction],
        bank_lines: Sequence[BankStatementLine],
    ) -> tuple[list[MatchedPair], list[Transaction], list[BankStatementLine]]:
        """Greedily pair ledger transactions with bank lines.

        Returns:
            Matched pairs, unmatched ledger transactions, unmatched bank lines.
        """
        remaining = list(bank_lines)
        matched: list[MatchedPair] = []
        unmatched_book: list[Transaction] = []

        for tx in ledger:
            best_index: int | None = None
            best_score = 0.0
            for index, line in enumerate(remaining):
                score = self.score(tx, line)
                if score is not None and score > best_score:
                    best_index, best_score = index, score

            if best_index is None:
                unmatched_book.append(tx)
                continue

            line = remaining.pop(best_index)
            matched.append(MatchedPair(ledger=tx, bank_line=line, confidence=best_score))

        return matched, unmatched_book, remaining

    async def reconcile(
        self,
        account_id: str,
        statement_date: date,
        statement_balance: Decimal,
        bank_lines: Sequence[BankStatementLine],
        commit: bool = True,
    ) -> ReconciliationResult:
        """Reconcile one bank statement for an account.

        Args:
            account_id: Bank account being reconciled.
            statement_date: Closing date of the statement; ledger transactions
                dated after it are ignored.
            statement_balance: Balance reported by the bank.
            bank_lines: Statement lines in the bank's order.
            commit: Mark matched ledger transactions as reconciled.

        Returns:
            The reconciliation result.

        Raises:
            NotFoundError: If the account does not exist.
            ValidationError: If inputs are malformed.
        """
        statement_date = to_date(statement_date, "statement_date")
        statement_balance = to_money(statement_balance, "statement_balance")
        for line in bank_lines:
            if not isinstance(line, BankStatementLine):
                raise ValidationError(
                    "bank_lines must contain BankStatementLine items",
                    details={"value": repr(line)},
                )

        if self._store.get_account(account_id) is None:
            raise NotFoundError("Bank account", account_id)

        key = run_key(account_id, statement_date)

        async with self._leases.hold(account_id):
            self._logger.info(
                "reconciliation_started",
                account_id=account_id,
                statement_date=statement_date.isoformat(),
                bank_lines=len(bank_lines),
            )

            ledger = self._store.query(
                RecordQuery(
                    kind=RecordKind.TRANSACTION,
                    end=statement_date,
                    account_id=account_id,
                    unreconciled_only=True,
                    reconciliation_key=key,
                )
            )

            matched, unmatched_book, unmatched_bank = self.match(ledger, bank_lines)

            result = ReconciliationResult(
                account_id=account_id,
                statement_date=statement_date,
                statement_balance=statement_balance,
                matched=matched,
                unmatched_book=unmatched_book,
                unmatched_bank=unmatched_bank,
            )
            result.variance = statement_balance - result.matched_total
            result.reconciled = (
                abs(result.variance) < self._tolerance
                and not unmatched_book
                and not unmatched_bank
            )
            result.recommendations = self._recommendations(result)

            if commit and matched:
                self._store.mark_reconciled([pair.ledger.id for pair in matched], key)

        self._logger.info(
            "reconciliation_completed",
            account_id=account_id,
            matched=len(matched),
            unmatched_book=len(unmatched_book),
            unmatched_bank=len(unmatched_bank),
            variance=str(result.variance),
            reconciled=result.reconciled,
        )
        return result

    def _recommendations(self, result: ReconciliationResult) -> list[str]:
        recommendations = []
        if result.unmatched_book:
            recommendations.append(
                f"Review {len(result.unmatched_book)} unmatched book transactions"
            )
        if result.unmatched_bank:
            recommendations.append(
                f"Review {len(result.unmatched_bank)} unmatched bank transactions"
            )
        if abs(result.variance) >= self._tolerance:
            recommendations.append(f"Investigate variance of ${result.variance:.2f}")
        return recommendations

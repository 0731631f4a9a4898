"""Read interface into the transactional store, plus an in-memory store.

The engine never creates or edits ledger data. The only write it performs
is flagging transactions as reconciled after a bank reconciliation run.
"""

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Protocol

import structlog

from rentledger.models import (
    BankAccount,
    MaintenanceCost,
    RentCharge,
    Transaction,
    VendorAccount,
    VendorInvoice,
)

logger = structlog.get_logger(__name__)


class RecordKind(str, Enum):
    """Kinds of records the store can return."""

    TRANSACTION = "transaction"
    MAINTENANCE_COST = "maintenance_cost"
    RENT_CHARGE = "rent_charge"
    VENDOR = "vendor"
    VENDOR_INVOICE = "vendor_invoice"


@dataclass(frozen=True)
class RecordQuery:
    """Filter passed to ``LedgerStore.query``.

    Date bounds apply to each record's effective date and are inclusive.
    ``unreconciled_only`` keeps transactions that are not reconciled, or
    that were reconciled under ``reconciliation_key``.
    """

    kind: RecordKind
    start: date | None = None
    end: date | None = None
    account_id: str | None = None
    unreconciled_only: bool = False
    reconciliation_key: str | None = None


class LedgerStore(Protocol):
    """What the engine needs from the transactional store.

    ``query`` must return a consistent view: no write may become partially
    visible while one call is building its result.
    """

    def query(self, query: RecordQuery) -> list[Any]: ...

    def get_account(self, account_id: str) -> BankAccount | None: ...

    def mark_reconciled(self, transaction_ids: Iterable[str], key: str) -> None: ...


class InMemoryLedgerStore:
    """Thread-safe store holding records in insertion order."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[RecordKind, list[Any]] = {kind: [] for kind in RecordKind}
        self._accounts: dict[str, BankAccount] = {}

    def add_account(self, account: BankAccount) -> None:
        with self._lock:
            self._accounts[account.id] = account

    def add_transactions(self, transactions: Iterable[Transaction]) -> None:
        self._extend(RecordKind.TRANSACTION, transactions)

    def add_maintenance_costs(self, costs: Iterable[MaintenanceCost]) -> None:
        self._extend(RecordKind.MAINTENANCE_COST, costs)

    def add_rent_charges(self, charges: Iterable[RentCharge]) -> None:
        self._extend(RecordKind.RENT_CHARGE, charges)

    def add_vendors(self, vendors: Iterable[VendorAccount]) -> None:
        self._extend(RecordKind.VENDOR, vendors)

    def add_vendor_invoices(self, invoices: Iterable[VendorInvoice]) -> None:
        self._extend(RecordKind.VENDOR_INVOICE, invoices)

    def _extend(self, kind: RecordKind, records: Iterable[Any]) -> None:
        with self._lock:
            self._records[kind].extend(records)

    def get_account(self, account_id: str) -> BankAccount | None:
        with self._lock:
            return self._accounts.get(account_id)

    def query(self, query: RecordQuery) -> list[Any]:
        """Return matching records as a snapshot list."""
        with self._lock:
            records = list(self._records[query.kind])

        return [r for r in records if self._matches(r, query)]

    def _matches(self, record: Any, query: RecordQuery) -> bool:
        effective = getattr(record, "effective_date", None)
        if effective is not None:
            if query.start is not None and effective < query.start:
                return False
            if query.end is not None and effective > query.end:
                return False

        if isinstance(record, Transaction):
            if query.account_id is not None and record.account_id != query.account_id:
                return False
            if query.unreconciled_only and record.reconciled:
                return (
                    query.reconciliation_key is not None
                    and record.reconciliation_key == query.reconciliation_key
                )
        return True

    def mark_reconciled(self, transaction_ids: Iterable[str], key: str) -> None:
        """Flag transactions as reconciled under a run key."""
        ids = set(transaction_ids)
        with self._lock:
            ledger = self._records[RecordKind.TRANSACTION]
            self._records[RecordKind.TRANSACTION] = [
                tx.mark_reconciled(key) if tx.id in ids else tx for tx in ledger
            ]
        logger.debug("transactions_reconciled", count=len(ids), key=key)

"""Category-based summation over ledger data."""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

import structlog

from rentledger.config import get_settings
from rentledger.models import Category, DateRange, ReportScope, Transaction, TransactionType
from rentledger.store import LedgerStore, RecordQuery

logger = structlog.get_logger(__name__)

R = TypeVar("R")

ZERO = Decimal("0")


class TTLCache:
    """Bounded cache whose entries expire after ``ttl`` seconds.

    Instances are injected where memoization is wanted; nothing in the
    package keeps a module-level cache.
    """

    def __init__(
        self,
        maxsize: int = 128,
        ttl: float = 60.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._maxsize = maxsize
        self._ttl = ttl
        self._timer = timer
        self._data: OrderedDict[Any, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Any, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._timer() >= expires_at:
                del self._data[key]
                return default
            return value

    def set(self, key: Any, value: Any) -> None:
        with self._lock:
            self._expire()
            if key in self._data:
                del self._data[key]
            elif len(self._data) >= self._maxsize:
                self._data.popitem(last=False)
            self._data[key] = (self._timer() + self._ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def _expire(self) -> None:
        now = self._timer()
        for key in [k for k, (expires_at, _) in self._data.items() if now >= expires_at]:
            del self._data[key]

    def __len__(self) -> int:
        with self._lock:
            self._expire()
            return len(self._data)

    @classmethod
    def from_settings(cls) -> "TTLCache | None":
        """Build a cache from settings, or None when caching is disabled."""
        settings = get_settings()
        if settings.aggregation_cache_ttl <= 0:
            return None
        return cls(
            maxsize=settings.aggregation_cache_size,
            ttl=settings.aggregation_cache_ttl,
        )


class CategoryAggregator:
    """Filters and sums ledger records by category, type, scope and date."""

    def __init__(
        self,
        cache: TTLCache | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._cache = cache
        self._today = today
        self._logger = logger.bind(component="aggregator")

    def load(self, store: LedgerStore, query: RecordQuery) -> list[Any]:
        """Read records from the store, memoized when a cache is injected."""
        if self._cache is None:
            return store.query(query)

        key = (id(store), query)
        cached = self._cache.get(key)
        if cached is not None:
            self._logger.debug("cache_hit", kind=query.kind.value)
            return list(cached)

        records = store.query(query)
        self._cache.set(key, tuple(records))
        return records

    def aggregate(
        self,
        transactions: Iterable[Transaction],
        category_key: str = "category",
        type_filter: TransactionType | None = None,
    ) -> dict[Category, Decimal]:
        """Sum transaction amounts per category.

        Every category is present in the result; an empty input yields
        all-zero sums. Values of ``category_key`` that are not known
        categories are summed under OTHER.
        """
        sums: dict[Category, Decimal] = {category: ZERO for category in Category}
        for tx in transactions:
            if type_filter is not None and tx.type != type_filter:
                continue
            category = Category.parse(getattr(tx, category_key))
            sums[category] += tx.amount
        return sums

    def sum_category(
        self,
        transactions: Iterable[Transaction],
        category: Category,
        type_filter: TransactionType | None = None,
    ) -> Decimal:
        return self.aggregate(transactions, type_filter=type_filter)[category]

    def default_range(self) -> DateRange:
        return DateRange.year_to_date(self._today())

    def scope_filter(self, records: Iterable[R], scope: ReportScope | None = None) -> list[R]:
        """Keep records inside the scope's buildings/units and date range.

        The date range is inclusive on both ends and defaults to the
        current year to date.
        """
        scope = scope or ReportScope()
        date_range = scope.date_range or self.default_range()
        return [
            record
            for record in records
            if date_range.contains(record.effective_date)  # type: ignore[attr-defined]
            and scope.includes(
                getattr(record, "building_id", None),
                getattr(record, "unit_id", None),
            )
        ]

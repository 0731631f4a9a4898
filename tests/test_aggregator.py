"""Tests for category aggregation and the TTL cache."""

import random
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from rentledger.aggregator import CategoryAggregator, TTLCache
from rentledger.models import Category, DateRange, ReportScope, TransactionType
from rentledger.store import RecordKind, RecordQuery


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    """Tests for TTLCache."""

    def test_entries_expire(self):
        """Test that entries disappear after the ttl."""
        timer = FakeTimer()
        cache = TTLCache(maxsize=4, ttl=10, timer=timer)
        cache.set("k", "v")

        timer.now = 9.9
        assert cache.get("k") == "v"
        timer.now = 10.0
        assert cache.get("k") is None

    def test_bounded_size_evicts_oldest(self):
        """Test that the oldest entry is evicted at capacity."""
        cache = TTLCache(maxsize=2, ttl=60, timer=FakeTimer())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_invalid_arguments(self):
        """Test that size and ttl must be positive."""
        with pytest.raises(ValueError):
            TTLCache(maxsize=0)
        with pytest.raises(ValueError):
            TTLCache(ttl=0)

    def test_from_settings_disabled_by_default(self):
        """Test that caching is off unless a ttl is configured."""
        assert TTLCache.from_settings() is None


class TestAggregate:
    """Tests for CategoryAggregator.aggregate."""

    def test_empty_input_yields_all_zero(self):
        """Test that every category is present and zero for no input."""
        sums = CategoryAggregator().aggregate([])

        assert set(sums) == set(Category)
        assert all(value == Decimal("0") for value in sums.values())

    def test_type_filter(self, make_tx):
        """Test that the type filter excludes the other direction."""
        txs = [
            make_tx("100", category="other", type="income"),
            make_tx("40", category="other", type="expense"),
        ]
        aggregator = CategoryAggregator()

        income = aggregator.aggregate(txs, type_filter=TransactionType.INCOME)
        expense = aggregator.aggregate(txs, type_filter=TransactionType.EXPENSE)

        assert income[Category.OTHER] == Decimal("100")
        assert expense[Category.OTHER] == Decimal("40")

    def test_negative_amounts_are_reversals(self, make_tx):
        """Test that reversing entries net out."""
        txs = [make_tx("500"), make_tx("-500")]

        assert CategoryAggregator().sum_category(txs, Category.RENT_INCOME) == Decimal("0")

    def test_sum_is_order_independent(self, make_tx):
        """Test that decimal sums do not drift with summation order."""
        txs = [make_tx("0.10") for _ in range(30)] + [make_tx("1234.57"), make_tx("-0.03")]
        shuffled = list(txs)
        random.Random(7).shuffle(shuffled)
        aggregator = CategoryAggregator()

        forward = aggregator.sum_category(txs, Category.RENT_INCOME)
        backward = aggregator.sum_category(shuffled, Category.RENT_INCOME)

        assert forward == backward == Decimal("1237.54")

    def test_custom_category_key(self):
        """Test aggregating by an alternate attribute."""
        record = MagicMock(type=TransactionType.EXPENSE, amount=Decimal("12"))
        record.legacy_category = "TAXES"

        sums = CategoryAggregator().aggregate([record], category_key="legacy_category")

        assert sums[Category.PROPERTY_TAX] == Decimal("12")


class TestScopeFilter:
    """Tests for CategoryAggregator.scope_filter."""

    def test_defaults_to_year_to_date(self, make_tx):
        """Test that no date range means the current year to date."""
        aggregator = CategoryAggregator(today=lambda: date(2024, 6, 30))
        txs = [
            make_tx("1", on=date(2023, 12, 31)),
            make_tx("2", on=date(2024, 1, 1)),
            make_tx("3", on=date(2024, 7, 1)),
        ]

        kept = aggregator.scope_filter(txs)

        assert [tx.amount for tx in kept] == [Decimal("2")]

    def test_range_is_inclusive(self, make_tx):
        """Test that both range boundaries are included."""
        aggregator = CategoryAggregator()
        txs = [
            make_tx("1", on=date(2024, 1, 1)),
            make_tx("2", on=date(2024, 1, 31)),
            make_tx("3", on=date(2024, 2, 1)),
        ]
        scope = ReportScope(date_range=DateRange.month(2024, 1))

        assert len(aggregator.scope_filter(txs, scope)) == 2

    def test_unknown_building_yields_empty(self, make_tx):
        """Test that an unknown building id matches nothing rather than failing."""
        aggregator = CategoryAggregator()
        txs = [make_tx("1", building_id="b1")]
        scope = ReportScope(building_ids=["nope"], date_range=DateRange.month(2024, 1))

        assert aggregator.scope_filter(txs, scope) == []


class TestLoad:
    """Tests for memoized store reads."""

    def test_no_cache_reads_every_time(self):
        """Test that without a cache every load hits the store."""
        store = MagicMock()
        store.query.return_value = []
        query = RecordQuery(kind=RecordKind.TRANSACTION)
        aggregator = CategoryAggregator()

        aggregator.load(store, query)
        aggregator.load(store, query)

        assert store.query.call_count == 2

    def test_injected_cache_memoizes(self, make_tx):
        """Test that an injected cache serves repeated reads."""
        store = MagicMock()
        store.query.return_value = [make_tx("1")]
        query = RecordQuery(kind=RecordKind.TRANSACTION)
        aggregator = CategoryAggregator(cache=TTLCache(maxsize=8, ttl=60))

        first = aggregator.load(store, query)
        second = aggregator.load(store, query)

        assert store.query.call_count == 1
        assert first == second

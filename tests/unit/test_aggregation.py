"""Unit tests for transaction aggregation"""

from datetime import datetime

from conftest import JST, make_transaction
from zaim_exporter.domain.aggregation import aggregate, parse_occurred_at, today_total
from zaim_exporter.domain.models import TimeUnit


def test_aggregate_by_hour(sample_transactions):
    """Payments in the same hour are summed; income lands in its own hour"""
    buckets = aggregate(sample_transactions, TimeUnit.HOUR, JST)

    ten = buckets[datetime(2024, 1, 15, 10, tzinfo=JST)]
    assert ten.payment_total == 1500
    assert ten.payment_count == 2
    assert ten.income_total == 0
    assert ten.label == "2024-01-15 10:00:00"

    nine = buckets[datetime(2024, 1, 15, 9, tzinfo=JST)]
    assert nine.income_total == 2000
    assert nine.income_count == 1
    assert nine.payment_count == 0

    assert len(buckets) == 2


def test_aggregate_by_day(sample_transactions):
    buckets = aggregate(sample_transactions, TimeUnit.DAY, JST)

    assert list(buckets) == [datetime(2024, 1, 15, tzinfo=JST)]
    day = buckets[datetime(2024, 1, 15, tzinfo=JST)]
    assert day.label == "2024-01-15"
    assert day.payment_total == 1500
    assert day.income_total == 2000


def test_transfers_excluded_from_totals():
    transactions = [
        make_transaction(1, "transfer", 9999, "2024-01-15 10:00:00"),
        make_transaction(2, "payment", 100, "2024-01-15 10:30:00"),
    ]

    bucket = aggregate(transactions, TimeUnit.HOUR, JST)[datetime(2024, 1, 15, 10, tzinfo=JST)]

    assert bucket.payment_total == 100
    assert bucket.payment_count == 1
    assert bucket.income_total == 0
    assert bucket.income_count == 0


def test_unparsable_timestamps_skipped():
    transactions = [
        make_transaction(1, "payment", 100, "not a timestamp"),
        make_transaction(2, "payment", 200, "2024-01-15"),
        make_transaction(3, "payment", 300, "2024-01-15 11:00:00"),
    ]

    buckets = aggregate(transactions, TimeUnit.HOUR, JST)

    assert len(buckets) == 1
    assert buckets[datetime(2024, 1, 15, 11, tzinfo=JST)].payment_total == 300


def test_empty_input():
    assert aggregate([], TimeUnit.HOUR, JST) == {}
    assert today_total([], JST) == 0


def test_timestamps_read_in_reporting_zone():
    """A Tokyo timestamp is bucketed by its Tokyo hour whatever the host zone is"""
    parsed = parse_occurred_at("2024-01-15 00:30:00", JST)

    assert parsed.tzinfo is JST
    assert parsed.utcoffset().total_seconds() == 9 * 3600


def test_today_total_counts_only_todays_payments(sample_transactions):
    transactions = sample_transactions + [
        make_transaction(4, "payment", 700, "2024-01-14 23:59:59"),
        make_transaction(5, "transfer", 5000, "2024-01-15 08:00:00"),
    ]
    now = datetime(2024, 1, 15, 12, 0, tzinfo=JST)

    assert today_total(transactions, JST, now=now) == 1500


def test_today_total_uses_reporting_zone_date():
    """At 2024-01-14 16:00 UTC it is already the 15th in Tokyo"""
    transactions = [make_transaction(1, "payment", 400, "2024-01-15 00:30:00")]
    now = datetime.fromisoformat("2024-01-14T16:00:00+00:00")

    assert today_total(transactions, JST, now=now) == 400


def test_day_buckets_follow_transaction_date():
    """A purchase made on the 14th but entered on the 15th belongs to the 14th"""
    transactions = [make_transaction(1, "payment", 800, "2024-01-15 09:10:00", date="2024-01-14")]

    daily = aggregate(transactions, TimeUnit.DAY, JST)
    hourly = aggregate(transactions, TimeUnit.HOUR, JST)

    assert list(daily) == [datetime(2024, 1, 14, tzinfo=JST)]
    assert daily[datetime(2024, 1, 14, tzinfo=JST)].payment_total == 800
    assert list(hourly) == [datetime(2024, 1, 15, 9, tzinfo=JST)]


def test_today_total_ignores_late_entries():
    transactions = [
        make_transaction(1, "payment", 800, "2024-01-15 09:10:00", date="2024-01-14"),
        make_transaction(2, "payment", 300, "2024-01-15 11:00:00", date="2024-01-15"),
    ]
    now = datetime(2024, 1, 15, 12, 0, tzinfo=JST)

    assert today_total(transactions, JST, now=now) == 300


def test_unparsable_dates_skipped_for_days():
    transactions = [
        make_transaction(1, "payment", 100, "2024-01-15 10:00:00", date="15/01/2024"),
        make_transaction(2, "payment", 200, "2024-01-15 10:00:00"),
    ]

    daily = aggregate(transactions, TimeUnit.DAY, JST)

    assert daily[datetime(2024, 1, 15, tzinfo=JST)].payment_total == 200
    assert today_total(transactions, JST, now=datetime(2024, 1, 15, 12, tzinfo=JST)) == 200

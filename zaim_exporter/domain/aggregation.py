"""Transaction aggregation - buckets money records by hour or day"""

from dataclasses import replace
from datetime import datetime, tzinfo
from typing import Dict, Iterable, Optional

from zaim_exporter.domain.models import AggregationBucket, TimeUnit, TransactionMode, TransactionRecord

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


def parse_occurred_at(value: str, tz: tzinfo) -> Optional[datetime]:
    """Interpret a Zaim timestamp in the reporting time zone; None if unparsable"""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=tz)
    except (TypeError, ValueError):
        return None


def parse_date(value: str, tz: tzinfo) -> Optional[datetime]:
    """Midnight of a Zaim transaction date in the reporting time zone; None if unparsable"""
    try:
        return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=tz)
    except (TypeError, ValueError):
        return None


def truncate(moment: datetime, unit: TimeUnit) -> datetime:
    if unit is TimeUnit.HOUR:
        return moment.replace(minute=0, second=0, microsecond=0)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def bucket_start(txn: TransactionRecord, unit: TimeUnit, tz: tzinfo) -> Optional[datetime]:
    # Hours follow when the record was entered; days follow the transaction date
    if unit is TimeUnit.HOUR:
        occurred = parse_occurred_at(txn.occurred_at, tz)
    else:
        occurred = parse_date(txn.date, tz)
    return truncate(occurred, unit) if occurred is not None else None


def aggregate(
    transactions: Iterable[TransactionRecord],
    unit: TimeUnit,
    tz: tzinfo,
) -> Dict[datetime, AggregationBucket]:
    """
    Sum payments and incomes per time bucket.

    Requirements:
    - Hourly buckets use the entry timestamp, daily buckets the transaction date
    - Both are read in the reporting time zone, not the host's
    - Records with an unparsable timestamp or date are skipped
    - Transfers move money between accounts and count as neither payment nor income

    Returns:
        Mapping of bucket start to its (frozen) totals
    """
    buckets: Dict[datetime, AggregationBucket] = {}

    for txn in transactions:
        start = bucket_start(txn, unit, tz)
        if start is None:
            continue

        bucket = buckets.get(start) or AggregationBucket(unit=unit, start=start)

        if txn.mode is TransactionMode.PAYMENT:
            bucket = replace(
                bucket,
                payment_total=bucket.payment_total + txn.amount,
                payment_count=bucket.payment_count + 1,
            )
        elif txn.mode is TransactionMode.INCOME:
            bucket = replace(
                bucket,
                income_total=bucket.income_total + txn.amount,
                income_count=bucket.income_count + 1,
            )

        buckets[start] = bucket

    return buckets


def today_total(
    transactions: Iterable[TransactionRecord],
    tz: tzinfo,
    now: Optional[datetime] = None,
) -> int:
    """Total payments whose transaction date is today in the reporting time zone"""
    today = (now or datetime.now(tz)).astimezone(tz).date()

    total = 0
    for txn in transactions:
        if txn.mode is not TransactionMode.PAYMENT:
            continue
        day = parse_date(txn.date, tz)
        if day is not None and day.date() == today:
            total += txn.amount

    return total

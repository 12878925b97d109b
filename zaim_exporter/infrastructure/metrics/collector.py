"""Prometheus collector serving Zaim aggregates through a short-lived cache"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterator, Optional

from prometheus_client import Counter
from prometheus_client.core import GaugeMetricFamily, Metric

from zaim_exporter.domain.aggregation import aggregate, today_total
from zaim_exporter.domain.exceptions import ExporterError
from zaim_exporter.domain.models import CacheEntry, TimeUnit
from zaim_exporter.infrastructure.clients.zaim import TransactionFetcher
from zaim_exporter.infrastructure.observability.logging import log_scrape_failure
from zaim_exporter.utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(minutes=5)
DEFAULT_FETCH_TIMEOUT = 30.0

HOURLY_GAUGES = (
    ("zaim_payment_amount", "Total payment amount per hour", "payment_total"),
    ("zaim_payment_count", "Number of payments per hour", "payment_count"),
    ("zaim_income_amount", "Total income amount per hour", "income_total"),
    ("zaim_income_count", "Number of income transactions per hour", "income_count"),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def error_metric() -> GaugeMetricFamily:
    family = GaugeMetricFamily("zaim_error", "Error fetching data from Zaim API", labels=["type"])
    family.add_metric(["api_error"], 1)
    return family


class ZaimCollector:
    """
    Scrape-triggered collector.

    Each scrape reuses the cached transactions while they are younger than the
    TTL, otherwise refetches them. A failed fetch yields only the zaim_error
    gauge for that scrape; the previous cache entry is left as it was but is
    not served.
    """

    def __init__(
        self,
        fetcher: TransactionFetcher,
        *,
        reporting_tz: tzinfo,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        fetch_failures: Optional[Counter] = None,
    ):
        self.fetcher = fetcher
        self.reporting_tz = reporting_tz
        self.cache_ttl = cache_ttl
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._fetch_failures = fetch_failures
        self._lock = ReadWriteLock()
        self._entry: Optional[CacheEntry] = None

    @property
    def cache_entry(self) -> Optional[CacheEntry]:
        with self._lock.read_locked():
            return self._entry

    def _is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < self.cache_ttl

    def get_transactions(self) -> CacheEntry:
        """
        Return a fresh cache entry, fetching at most once per expiry.

        Raises:
            ExporterError: If the fetch fails; the cache is left untouched
        """
        with self._lock.read_locked():
            entry = self._entry
            if self._is_fresh(entry):
                logger.debug("Using cached transactions")
                return entry

        with self._lock.write_locked():
            # Another scrape may have refreshed while we waited
            entry = self._entry
            if self._is_fresh(entry):
                return entry

            transactions = self.fetcher.fetch_current_month(timeout=self.fetch_timeout)
            entry = CacheEntry(transactions=tuple(transactions), fetched_at=self._clock())
            self._entry = entry

        logger.info("Fetched and cached transactions", extra={"count": len(entry.transactions)})
        return entry

    def describe(self) -> Iterator[Metric]:
        for name, documentation, _ in HOURLY_GAUGES:
            yield GaugeMetricFamily(name, documentation, labels=["hour"])
        yield GaugeMetricFamily("zaim_today_total_amount", "Today's total spending")
        yield GaugeMetricFamily("zaim_last_update", "Unix timestamp of last successful update")
        yield GaugeMetricFamily("zaim_error", "Error fetching data from Zaim API", labels=["type"])

    def collect(self) -> Iterator[Metric]:
        try:
            entry = self.get_transactions()
        except ExporterError as e:
            log_scrape_failure(str(e), error_type=type(e).__name__)
            yield from self._fail()
            return
        except Exception as e:
            # Scrapes must not fail; anything unexpected is still an API error
            logger.exception("Unexpected error while fetching transactions")
            log_scrape_failure(str(e), error_type=type(e).__name__)
            yield from self._fail()
            return

        yield from self.build_metrics(entry)

    def _fail(self) -> Iterator[Metric]:
        if self._fetch_failures is not None:
            self._fetch_failures.inc()
        yield error_metric()

    def build_metrics(self, entry: CacheEntry) -> Iterator[Metric]:
        hourly = aggregate(entry.transactions, TimeUnit.HOUR, self.reporting_tz)
        buckets = [hourly[start] for start in sorted(hourly)]

        for name, documentation, attribute in HOURLY_GAUGES:
            family = GaugeMetricFamily(name, documentation, labels=["hour"])
            for bucket in buckets:
                family.add_metric([bucket.label], getattr(bucket, attribute))
            yield family

        yield GaugeMetricFamily(
            "zaim_today_total_amount",
            "Today's total spending",
            value=today_total(entry.transactions, self.reporting_tz, now=self._clock()),
        )
        yield GaugeMetricFamily(
            "zaim_last_update",
            "Unix timestamp of last successful update",
            value=entry.fetched_at.timestamp(),
        )

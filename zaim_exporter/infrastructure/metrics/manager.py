"""Lifecycle of the Zaim collector within a Prometheus registry"""

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Optional, Protocol

from prometheus_client import Counter

from zaim_exporter.domain.exceptions import RegistrationError
from zaim_exporter.infrastructure.clients.zaim import TransactionFetcher
from zaim_exporter.infrastructure.metrics.collector import (
    DEFAULT_CACHE_TTL,
    DEFAULT_FETCH_TIMEOUT,
    ZaimCollector,
    utcnow,
)
from zaim_exporter.utils.locks import ReadWriteLock

logger = logging.getLogger(__name__)


class MetricsRegistry(Protocol):
    """The part of prometheus_client.CollectorRegistry the manager relies on"""

    def register(self, collector: Any) -> None: ...

    def unregister(self, collector: Any) -> None: ...


class CollectorManager:
    """
    Keeps at most one ZaimCollector registered.

    The registry is injected so tests can use an isolated CollectorRegistry
    instead of the process-wide default. Register and unregister hold the
    exclusive lock for the whole unregister-then-register sequence; scrapes
    already running against a replaced collector finish with the fetcher that
    collector was built with.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        *,
        reporting_tz: tzinfo,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        fetch_failures: Optional[Counter] = None,
    ):
        self.registry = registry
        self.reporting_tz = reporting_tz
        self.cache_ttl = cache_ttl
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._fetch_failures = fetch_failures
        self._lock = ReadWriteLock()
        self._collector: Optional[ZaimCollector] = None

    @property
    def collector(self) -> Optional[ZaimCollector]:
        with self._lock.read_locked():
            return self._collector

    def register_collector(self, fetcher: TransactionFetcher) -> ZaimCollector:
        """
        Register a collector for `fetcher`, replacing any current one.

        Raises:
            RegistrationError: If the registry rejects the collector
        """
        with self._lock.write_locked():
            if self._collector is not None:
                self.registry.unregister(self._collector)
                self._collector = None
                logger.info("Unregistered existing collector")

            collector = ZaimCollector(
                fetcher,
                reporting_tz=self.reporting_tz,
                cache_ttl=self.cache_ttl,
                fetch_timeout=self.fetch_timeout,
                clock=self._clock,
                fetch_failures=self._fetch_failures,
            )
            try:
                self.registry.register(collector)
            except ValueError as e:
                raise RegistrationError(f"Registry rejected Zaim collector: {e}") from e

            self._collector = collector

        logger.info("Registered new Zaim collector")
        return collector

    def unregister_collector(self) -> None:
        """Remove the current collector; a no-op when none is registered"""
        with self._lock.write_locked():
            if self._collector is None:
                return
            self.registry.unregister(self._collector)
            self._collector = None

        logger.info("Unregistered collector")

    def is_registered(self) -> bool:
        with self._lock.read_locked():
            return self._collector is not None

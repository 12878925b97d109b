"""Zaim API HTTP client for fetching money records"""

import logging
import time
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Dict, List, Optional, Protocol

import httpx
from authlib.integrations.httpx_client import OAuth1Client

from zaim_exporter.config import settings
from zaim_exporter.domain.exceptions import FetchTimeoutError, UpstreamError
from zaim_exporter.domain.models import Credential, TransactionMode, TransactionRecord

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class TransactionFetcher(Protocol):
    """Source of the current month's transactions"""

    def fetch_current_month(self, timeout: float) -> List[TransactionRecord]: ...


def current_month_range(tz: tzinfo, now: Optional[datetime] = None) -> tuple[date, date]:
    """First and last day of the current month in the reporting time zone"""
    today = (now or datetime.now(tz)).astimezone(tz).date()
    start = today.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def parse_transaction(raw: Dict[str, Any]) -> TransactionRecord:
    category = raw.get("category_id")
    return TransactionRecord(
        id=int(raw["id"]),
        mode=TransactionMode(raw["mode"]),
        amount=int(raw["amount"]),
        date=str(raw["date"]),
        occurred_at=str(raw["created"]),
        category=str(category) if category else None,
    )


class ZaimClient:
    """Client for the Zaim money API, signed with the stored access credential"""

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        credential: Credential,
        *,
        base_url: str | None = None,
        reporting_tz: tzinfo | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.credential = credential
        self.base_url = (base_url or settings.zaim_api_base).rstrip("/")
        self.reporting_tz = reporting_tz or settings.reporting_tz
        self._transport = transport

    def _session(self, timeout: float) -> OAuth1Client:
        return OAuth1Client(
            self.consumer_key,
            self.consumer_secret,
            token=self.credential.access_token,
            token_secret=self.credential.access_secret,
            timeout=timeout,
            transport=self._transport,
        )

    def get_transactions(self, start_date: date, end_date: date, timeout: float) -> List[TransactionRecord]:
        """
        Fetch every money record between two dates (inclusive), page by page.

        Raises:
            FetchTimeoutError: If the whole fetch, across all pages, exceeds the timeout
            UpstreamError: On HTTP errors or an invalid response
        """
        logger.info(
            "Fetching transactions from Zaim API",
            extra={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

        records: List[TransactionRecord] = []
        deadline = time.monotonic() + timeout
        with self._session(timeout) as client:
            page = 1
            while True:
                # One budget for every page, not one per request
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise FetchTimeoutError(f"Zaim API timeout after {timeout}s (page {page})")

                try:
                    response = client.get(
                        f"{self.base_url}/home/money",
                        params={
                            "mapping": 1,
                            "start_date": start_date.isoformat(),
                            "end_date": end_date.isoformat(),
                            "limit": PAGE_SIZE,
                            "page": page,
                        },
                        timeout=remaining,
                    )
                    response.raise_for_status()
                    money = response.json().get("money", [])
                    records.extend(parse_transaction(raw) for raw in money)

                except httpx.TimeoutException as e:
                    raise FetchTimeoutError(f"Zaim API timeout after {timeout}s") from e
                except httpx.HTTPStatusError as e:
                    raise UpstreamError(f"Zaim API error: {e.response.status_code}") from e
                except httpx.HTTPError as e:
                    raise UpstreamError(f"Zaim API request failed: {e}") from e
                except (KeyError, ValueError, TypeError, AttributeError) as e:
                    raise UpstreamError(f"Invalid transaction data from Zaim: {e}") from e

                if len(money) < PAGE_SIZE:
                    break
                page += 1

        logger.info("Fetched transactions", extra={"count": len(records)})
        return records

    def fetch_current_month(self, timeout: float) -> List[TransactionRecord]:
        start_date, end_date = current_month_range(self.reporting_tz)
        return self.get_transactions(start_date, end_date, timeout)

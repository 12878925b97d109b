"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class TransactionMode(str, Enum):
    """Kind of a Zaim money record"""

    PAYMENT = "payment"
    INCOME = "income"
    TRANSFER = "transfer"


class TimeUnit(str, Enum):
    """Bucket width used by the aggregation engine"""

    HOUR = "hour"
    DAY = "day"


@dataclass(frozen=True)
class Credential:
    """Long-lived OAuth access token pair"""

    access_token: str
    access_secret: str
    created_at: datetime


@dataclass(frozen=True)
class HandshakeState:
    """Short-lived request token pair awaiting the user's authorization"""

    handshake_id: str
    handshake_secret: str
    expires_at: datetime


@dataclass(frozen=True)
class TransactionRecord:
    """Money record from the Zaim API"""

    id: int
    mode: TransactionMode
    amount: int  # minor units (yen)
    date: str  # "2024-01-15", the day the money moved
    occurred_at: str  # "2024-01-15 10:30:45", when the record was entered, reporting time zone
    category: Optional[str] = None


@dataclass(frozen=True)
class AggregationBucket:
    """Payment and income totals for one hour or day"""

    unit: TimeUnit
    start: datetime
    payment_total: int = 0
    payment_count: int = 0
    income_total: int = 0
    income_count: int = 0

    @property
    def label(self) -> str:
        if self.unit is TimeUnit.HOUR:
            return self.start.strftime("%Y-%m-%d %H:00:00")
        return self.start.strftime("%Y-%m-%d")


@dataclass(frozen=True)
class CacheEntry:
    """Transactions fetched in one refresh, with the time of the fetch"""

    transactions: Tuple[TransactionRecord, ...]
    fetched_at: datetime

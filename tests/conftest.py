"""Pytest fixtures for testing"""

import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, List, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from zaim_exporter.api.main import create_app
from zaim_exporter.config import Settings
from zaim_exporter.domain.models import Credential, TransactionMode, TransactionRecord
from zaim_exporter.infrastructure.clients.oauth import AuthorizationManager, OAuthEndpoints
from zaim_exporter.infrastructure.storage.credentials import FileCredentialStore
from zaim_exporter.infrastructure.storage.handshakes import MemoryHandshakeStore

JST = ZoneInfo("Asia/Tokyo")

TEST_ENDPOINTS = OAuthEndpoints(
    request_token_url="https://api.zaim.test/v2/auth/request",
    authorize_url="https://auth.zaim.test/users/auth",
    access_token_url="https://api.zaim.test/v2/auth/access",
)


class StaticFetcher:
    """Deterministic TransactionFetcher that counts its calls"""

    def __init__(
        self,
        transactions: Optional[List[TransactionRecord]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.transactions = list(transactions or [])
        self.error = error
        self.delay = delay
        self.calls = 0
        self.timeouts: List[float] = []
        self._lock = threading.Lock()

    def fetch_current_month(self, timeout: float) -> List[TransactionRecord]:
        with self._lock:
            self.calls += 1
            self.timeouts.append(timeout)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.transactions)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeOAuthSession:
    """Stand-in for authlib's OAuth1Client with canned Zaim responses"""

    instances: List["FakeOAuthSession"] = []

    def __init__(self, client_id: str, client_secret: str, **kwargs):
        self.client_id = client_id
        self.client_secret = client_secret
        self.kwargs = kwargs
        FakeOAuthSession.instances.append(self)

    def __enter__(self) -> "FakeOAuthSession":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def fetch_request_token(self, url: str) -> dict:
        return {"oauth_token": "request-token", "oauth_token_secret": "request-secret"}

    def create_authorization_url(self, url: str, request_token: Optional[str] = None) -> str:
        return f"{url}?oauth_token={request_token}"

    def fetch_access_token(self, url: str, verifier: Optional[str] = None) -> dict:
        return {"oauth_token": "access-token", "oauth_token_secret": "access-secret"}


def make_transaction(
    id: int,
    mode: str,
    amount: int,
    occurred_at: str,
    category: Optional[str] = None,
    date: Optional[str] = None,
) -> TransactionRecord:
    """Record whose transaction date defaults to the day it was entered"""
    return TransactionRecord(
        id=id,
        mode=TransactionMode(mode),
        amount=amount,
        date=date if date is not None else occurred_at[:10],
        occurred_at=occurred_at,
        category=category,
    )


@pytest.fixture
def sample_transactions() -> List[TransactionRecord]:
    """Two payments in the 10:00 hour and one income at 09:00 on 2024-01-15"""
    return [
        make_transaction(1, "payment", 1000, "2024-01-15 10:05:00"),
        make_transaction(2, "payment", 500, "2024-01-15 10:50:00"),
        make_transaction(3, "income", 2000, "2024-01-15 09:00:00"),
    ]


@pytest.fixture
def clock() -> FakeClock:
    # 2024-01-15 12:00 in Tokyo
    return FakeClock(datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated registry so tests never touch the process-wide default"""
    return CollectorRegistry()


@pytest.fixture
def credential() -> Credential:
    return Credential(
        access_token="access-token",
        access_secret="access-secret",
        created_at=datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def token_file(tmp_path: Path) -> Path:
    return tmp_path / "data" / "oauth_tokens.json"


@pytest.fixture
def credential_store(token_file: Path) -> FileCredentialStore:
    return FileCredentialStore(token_file, b"k" * 32)


@pytest.fixture
def test_settings(token_file: Path) -> Settings:
    return Settings(
        zaim_consumer_key="consumer-key",
        zaim_consumer_secret="consumer-secret",
        token_file=str(token_file),
        redis_url=None,
        redis_password="",
        reporting_timezone="Asia/Tokyo",
    )


@pytest.fixture
def fetcher(sample_transactions: List[TransactionRecord]) -> StaticFetcher:
    return StaticFetcher(sample_transactions)


@pytest.fixture
def app_factory(
    test_settings: Settings,
    registry: CollectorRegistry,
    credential_store: FileCredentialStore,
    fetcher: StaticFetcher,
):
    """Build the app with in-memory handshakes, a fake OAuth session and a static fetcher"""
    FakeOAuthSession.instances.clear()

    def build(session_factory=FakeOAuthSession):
        authorization = AuthorizationManager(
            test_settings.zaim_consumer_key,
            test_settings.zaim_consumer_secret.get_secret_value(),
            credential_store,
            endpoints=TEST_ENDPOINTS,
            timeout=5.0,
            session_factory=session_factory,
        )
        return create_app(
            test_settings,
            registry=registry,
            credential_store=credential_store,
            handshake_store=MemoryHandshakeStore(),
            authorization=authorization,
            fetcher_factory=lambda credential: fetcher,
        )

    return build


@pytest.fixture
def client(app_factory) -> Generator[TestClient, None, None]:
    """FastAPI test client with the lifespan running"""
    with TestClient(app_factory(), follow_redirects=False) as test_client:
        yield test_client

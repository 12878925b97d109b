"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from starlette.responses import Response

from zaim_exporter.api.dependencies import FetcherFactory
from zaim_exporter.api.middleware import MetricsMiddleware, RequestIDMiddleware
from zaim_exporter.api.routes import auth, pages
from zaim_exporter.api.routes.schemas import HealthResponse, ReadyResponse
from zaim_exporter.config import Settings, settings
from zaim_exporter.domain.models import Credential
from zaim_exporter.infrastructure.clients.oauth import AuthorizationManager, OAuthEndpoints
from zaim_exporter.infrastructure.clients.zaim import ZaimClient
from zaim_exporter.infrastructure.metrics.manager import CollectorManager
from zaim_exporter.infrastructure.observability.metrics import build_service_metrics
from zaim_exporter.infrastructure.storage.credentials import (
    CredentialStore,
    FileCredentialStore,
    parse_encryption_key,
)
from zaim_exporter.infrastructure.storage.handshakes import HandshakeStore, build_handshake_store

logger = logging.getLogger(__name__)


def live_fetcher_factory(app_settings: Settings) -> FetcherFactory:
    """Fetchers that call the real Zaim API with the given credential"""

    def build(credential: Credential) -> ZaimClient:
        return ZaimClient(
            app_settings.zaim_consumer_key,
            app_settings.zaim_consumer_secret.get_secret_value(),
            credential,
            base_url=app_settings.zaim_api_base,
            reporting_tz=app_settings.reporting_tz,
        )

    return build


def create_app(
    app_settings: Settings | None = None,
    *,
    registry: CollectorRegistry | None = None,
    credential_store: CredentialStore | None = None,
    handshake_store: HandshakeStore | None = None,
    authorization: AuthorizationManager | None = None,
    fetcher_factory: FetcherFactory | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Every collaborator can be injected; anything left out is built from
    `app_settings`. The metrics registry is private to the app, never the
    prometheus_client global.
    """
    app_settings = app_settings or settings

    if registry is None:
        registry = CollectorRegistry()
        ProcessCollector(registry=registry)
        PlatformCollector(registry=registry)
    service_metrics = build_service_metrics(registry)

    if credential_store is None:
        credential_store = FileCredentialStore(
            app_settings.token_file,
            parse_encryption_key(app_settings.encryption_key.get_secret_value()),
        )
    if authorization is None:
        authorization = AuthorizationManager(
            app_settings.zaim_consumer_key,
            app_settings.zaim_consumer_secret.get_secret_value(),
            credential_store,
            endpoints=OAuthEndpoints.from_settings(app_settings),
            timeout=app_settings.http_timeout_seconds,
        )
    if handshake_store is None:
        handshake_store = build_handshake_store(app_settings)

    collector_manager = CollectorManager(
        registry,
        reporting_tz=app_settings.reporting_tz,
        cache_ttl=timedelta(seconds=app_settings.cache_ttl_seconds),
        fetch_timeout=app_settings.fetch_timeout_seconds,
        fetch_failures=service_metrics.fetch_failures,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        auth.restore_collector(app.state)
        yield
        app.state.collector_manager.unregister_collector()
        app.state.handshake_store.close()

    app = FastAPI(
        title="Zaim Prometheus Exporter",
        description="Exposes Zaim household accounting data as Prometheus metrics",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.registry = registry
    app.state.service_metrics = service_metrics
    app.state.credential_store = credential_store
    app.state.authorization = authorization
    app.state.handshake_store = handshake_store
    app.state.collector_manager = collector_manager
    app.state.fetcher_factory = fetcher_factory or live_fetcher_factory(app_settings)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse)
    def health_check():
        return HealthResponse(status="healthy", service=app_settings.service_name)

    # Readiness: only ready once authenticated with Zaim
    @app.get("/ready", response_model=ReadyResponse, response_model_exclude_none=True)
    def readiness_check():
        if not app.state.authorization.is_authenticated():
            return JSONResponse(
                status_code=503,
                content={"status": "not ready", "reason": "not authenticated"},
            )
        return ReadyResponse(status="ready")

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    # Register routers
    app.include_router(pages.router, tags=["pages"])
    app.include_router(auth.router, prefix="/zaim/auth", tags=["auth"])

    return app

"""Dependency injection for FastAPI endpoints"""

from typing import Callable

from fastapi import Request

from zaim_exporter.config import Settings
from zaim_exporter.domain.models import Credential
from zaim_exporter.infrastructure.clients.oauth import AuthorizationManager
from zaim_exporter.infrastructure.clients.zaim import TransactionFetcher
from zaim_exporter.infrastructure.metrics.manager import CollectorManager
from zaim_exporter.infrastructure.observability.metrics import ServiceMetrics
from zaim_exporter.infrastructure.storage.handshakes import HandshakeStore

FetcherFactory = Callable[[Credential], TransactionFetcher]


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authorization(request: Request) -> AuthorizationManager:
    """Provide the OAuth manager built at startup"""
    return request.app.state.authorization


def get_handshake_store(request: Request) -> HandshakeStore:
    return request.app.state.handshake_store


def get_collector_manager(request: Request) -> CollectorManager:
    return request.app.state.collector_manager


def get_service_metrics(request: Request) -> ServiceMetrics:
    return request.app.state.service_metrics


def get_fetcher_factory(request: Request) -> FetcherFactory:
    """Provide the callable turning a stored credential into a transaction fetcher"""
    return request.app.state.fetcher_factory

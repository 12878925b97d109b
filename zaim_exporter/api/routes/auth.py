"""/zaim/auth/* - OAuth handshake with Zaim and collector (re)registration"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.datastructures import State

from zaim_exporter.api.dependencies import (
    FetcherFactory,
    get_authorization,
    get_collector_manager,
    get_fetcher_factory,
    get_handshake_store,
    get_request_id,
    get_service_metrics,
    get_settings,
)
from zaim_exporter.api.routes.pages import SUCCESS_HTML
from zaim_exporter.api.routes.schemas import AuthStatusResponse, ResetResponse
from zaim_exporter.config import Settings
from zaim_exporter.domain.exceptions import (
    CredentialNotFoundError,
    CredentialStoreError,
    ExporterError,
    HandshakeNotFoundError,
    HandshakeStoreError,
    RegistrationError,
    UpstreamError,
)
from zaim_exporter.domain.models import Credential
from zaim_exporter.infrastructure.clients.oauth import AuthorizationManager
from zaim_exporter.infrastructure.metrics.manager import CollectorManager
from zaim_exporter.infrastructure.observability.metrics import ServiceMetrics, record_handshake
from zaim_exporter.infrastructure.storage.handshakes import HandshakeStore

logger = logging.getLogger(__name__)

router = APIRouter()

CALLBACK_PATH = "/zaim/auth/callback"


def build_callback_url(request: Request, configured: Optional[str] = None) -> str:
    """Callback URL as seen by the user's browser, honouring reverse-proxy headers"""
    if configured:
        return configured

    scheme = request.url.scheme
    if request.headers.get("X-Forwarded-Proto") == "https":
        scheme = "https"

    host = request.headers.get("X-Forwarded-Host") or request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}{CALLBACK_PATH}"


def attach_collector(
    manager: CollectorManager,
    fetcher_factory: FetcherFactory,
    credential: Credential,
) -> None:
    """Start serving Zaim metrics signed with `credential`"""
    manager.register_collector(fetcher_factory(credential))


def restore_collector(state: State) -> bool:
    """
    Register a collector at startup if a credential survived the restart.

    Returns:
        Whether a collector is now registered
    """
    try:
        credential = state.authorization.load_credential()
    except CredentialNotFoundError:
        logger.warning("Not authenticated with Zaim API, metrics will not be available")
        return False
    except ExporterError as e:
        logger.warning(f"Stored credential is unusable, metrics will not be available: {e}")
        return False

    attach_collector(state.collector_manager, state.fetcher_factory, credential)
    return True


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    authorization: AuthorizationManager = Depends(get_authorization),
    manager: CollectorManager = Depends(get_collector_manager),
):
    return AuthStatusResponse(
        authenticated=authorization.is_authenticated(),
        collector_registered=manager.is_registered(),
    )


@router.get("/start")
def start_auth(
    request: Request,
    authorization: AuthorizationManager = Depends(get_authorization),
    handshake_store: HandshakeStore = Depends(get_handshake_store),
    service_metrics: ServiceMetrics = Depends(get_service_metrics),
    app_settings: Settings = Depends(get_settings),
):
    """
    Begin the OAuth handshake.

    Flow:
    1. Request a token from Zaim with our callback URL
    2. Keep the request token secret until the callback arrives
    3. Redirect the browser to Zaim's authorization page
    """
    request_id = get_request_id(request)
    callback_url = build_callback_url(request, app_settings.zaim_callback_url)

    try:
        handshake = authorization.start_handshake(callback_url)
    except UpstreamError as e:
        record_handshake(service_metrics, "failed")
        logger.error(f"Failed to get authorization URL: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=502, detail="Failed to start OAuth flow")

    try:
        handshake_store.put(handshake.handshake_id, handshake.handshake_secret)
    except HandshakeStoreError as e:
        record_handshake(service_metrics, "failed")
        logger.error(f"Failed to store request token: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to store request token")

    record_handshake(service_metrics, "started")
    return RedirectResponse(handshake.authorization_url, status_code=302)


@router.get("/callback", response_class=HTMLResponse)
def auth_callback(
    request: Request,
    oauth_token: str = Query("", description="Request token issued at handshake start"),
    oauth_verifier: str = Query("", description="Verifier issued by Zaim after user consent"),
    authorization: AuthorizationManager = Depends(get_authorization),
    handshake_store: HandshakeStore = Depends(get_handshake_store),
    manager: CollectorManager = Depends(get_collector_manager),
    fetcher_factory: FetcherFactory = Depends(get_fetcher_factory),
    service_metrics: ServiceMetrics = Depends(get_service_metrics),
):
    """
    Finish the OAuth handshake and start serving metrics.

    The handshake entry is deleted as soon as it is read so that a replayed
    callback finds nothing.
    """
    request_id = get_request_id(request)

    if not oauth_token or not oauth_verifier:
        logger.error("Missing OAuth parameters", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Missing OAuth parameters")

    try:
        handshake_secret = handshake_store.get(oauth_token)
        handshake_store.delete(oauth_token)
    except HandshakeNotFoundError:
        logger.warning("Unknown or expired OAuth request token", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Unknown or expired OAuth request token")
    except HandshakeStoreError as e:
        logger.error(f"Failed to retrieve request token: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to retrieve request token")

    try:
        credential = authorization.complete_handshake(oauth_token, handshake_secret, oauth_verifier)
    except UpstreamError as e:
        record_handshake(service_metrics, "failed")
        logger.error(f"Failed to complete OAuth flow: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=502, detail="Failed to complete OAuth flow")
    except CredentialStoreError as e:
        record_handshake(service_metrics, "failed")
        logger.error(f"Failed to save access token: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to save access token")

    try:
        attach_collector(manager, fetcher_factory, credential)
    except RegistrationError as e:
        logger.error(f"Failed to register collector: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to register metrics collector")

    record_handshake(service_metrics, "completed")
    return HTMLResponse(SUCCESS_HTML)


@router.post("/reset", response_model=ResetResponse)
def reset_auth(
    request: Request,
    authorization: AuthorizationManager = Depends(get_authorization),
    manager: CollectorManager = Depends(get_collector_manager),
):
    """Stop serving Zaim metrics, then forget the credential"""
    manager.unregister_collector()

    try:
        authorization.reset()
    except CredentialStoreError as e:
        logger.error(f"Failed to reset auth: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Failed to reset authentication")

    return ResetResponse(status="success", message="Authentication reset successfully")

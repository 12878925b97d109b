"""Zaim OAuth 1.0a handshake and credential lifecycle"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import OAuth1Client

from zaim_exporter.config import Settings, settings
from zaim_exporter.domain.exceptions import CredentialNotFoundError, ExporterError, UpstreamError
from zaim_exporter.domain.models import Credential
from zaim_exporter.infrastructure.storage.credentials import CredentialStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., OAuth1Client]


@dataclass(frozen=True)
class OAuthEndpoints:
    request_token_url: str
    authorize_url: str
    access_token_url: str

    @classmethod
    def from_settings(cls, app_settings: Settings = settings) -> "OAuthEndpoints":
        return cls(
            request_token_url=app_settings.zaim_request_token_url,
            authorize_url=app_settings.zaim_authorize_url,
            access_token_url=app_settings.zaim_access_token_url,
        )


@dataclass(frozen=True)
class HandshakeStart:
    """Where to send the user, plus the request token pair to keep until the callback"""

    authorization_url: str
    handshake_id: str
    handshake_secret: str


class AuthorizationManager:
    """
    Owns the three-legged OAuth flow against Zaim.

    States: unauthenticated -> handshake started -> authenticated, and back to
    unauthenticated on reset. Pending handshakes live in the handshake store,
    not here; abandoned ones simply expire there.
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        credential_store: CredentialStore,
        *,
        endpoints: OAuthEndpoints | None = None,
        timeout: float | None = None,
        session_factory: SessionFactory = OAuth1Client,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.credential_store = credential_store
        self.endpoints = endpoints or OAuthEndpoints.from_settings()
        self.timeout = timeout or settings.http_timeout_seconds
        self._session_factory = session_factory

    def _session(self, **kwargs: Any) -> OAuth1Client:
        return self._session_factory(
            self.consumer_key,
            self.consumer_secret,
            timeout=self.timeout,
            **kwargs,
        )

    def start_handshake(self, callback_url: str) -> HandshakeStart:
        """
        Obtain a request token and build the user-facing authorization URL.

        Raises:
            UpstreamError: If Zaim rejects the request or the network fails
        """
        try:
            with self._session(redirect_uri=callback_url) as client:
                token = client.fetch_request_token(self.endpoints.request_token_url)
                start = HandshakeStart(
                    authorization_url=client.create_authorization_url(
                        self.endpoints.authorize_url,
                        request_token=token["oauth_token"],
                    ),
                    handshake_id=token["oauth_token"],
                    handshake_secret=token["oauth_token_secret"],
                )
        except (AuthlibBaseError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Failed to get request token: {e}")
            raise UpstreamError(f"Failed to start OAuth handshake: {e}") from e

        logger.info("Generated authorization URL", extra={"handshake_id": start.handshake_id})
        return start

    def complete_handshake(self, handshake_id: str, handshake_secret: str, verifier: str) -> Credential:
        """
        Exchange an authorized request token for an access token and persist it.

        The caller must have removed the handshake from the store already so a
        replayed callback cannot reach this point twice.

        Raises:
            UpstreamError: If the exchange fails
            CredentialStoreError: If the credential cannot be persisted
        """
        try:
            with self._session(token=handshake_id, token_secret=handshake_secret) as client:
                token = client.fetch_access_token(self.endpoints.access_token_url, verifier=verifier)
            credential = Credential(
                access_token=token["oauth_token"],
                access_secret=token["oauth_token_secret"],
                created_at=datetime.now(timezone.utc),
            )
        except (AuthlibBaseError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Failed to get access token: {e}")
            raise UpstreamError(f"Failed to complete OAuth handshake: {e}") from e

        self.credential_store.save(credential)
        logger.info("Successfully saved access credential")
        return credential

    def load_credential(self) -> Credential:
        return self.credential_store.load()

    def is_authenticated(self) -> bool:
        """True iff a usable credential is stored; never touches the network"""
        try:
            self.credential_store.load()
        except CredentialNotFoundError:
            return False
        except ExporterError as e:
            logger.warning(f"Stored credential is unusable: {e}")
            return False
        return True

    def reset(self) -> None:
        """Forget the credential. Unregister the collector before calling this."""
        self.credential_store.clear()
        logger.info("Authentication reset")

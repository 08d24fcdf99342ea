"""
ovirt_sdk.core.auth - SSO authentication
========================================

Obtains, caches, refreshes and revokes bearer tokens:

- PasswordStrategy: OAuth2 password grant against the engine SSO
- KerberosStrategy: negotiate (SPNEGO) grant, via requests-gssapi
- StaticTokenStrategy: a caller supplied token, never refreshed
- BasicStrategy: HTTP basic credentials on every request, no SSO
- TokenManager: thread safe cache with single-flight acquisition
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlparse
import base64
import enum
import logging
import threading
import time

from pydantic import BaseModel, ConfigDict, ValidationError

from ovirt_sdk.core.config import (
    BasicCredentials,
    ConnectionConfig,
    KerberosCredentials,
    PasswordCredentials,
    TokenCredentials,
)
from ovirt_sdk.core.errors import AuthError, ConfigError, ConnectionClosedError, Error
from ovirt_sdk.core.http import Response
from ovirt_sdk.core.transport import Transport


logger = logging.getLogger("ovirt_sdk.auth")

SSO_SCOPE = "ovirt-app-api"
EXPIRY_SKEW = 30.0

_FORM_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/x-www-form-urlencoded",
}


@dataclass(frozen=True)
class Token:
    """
    A credential sent in the ``Authorization`` header.

    Attributes
    ----------
    value : str
        Opaque string sent as ``Authorization: <scheme> <value>``
    expires_at : float, optional
        Expiry as epoch seconds, when the SSO response carried one
    refreshable : bool
        False for caller supplied tokens and basic credentials
    skew : float
        Seconds before ``expires_at`` at which the token counts as expired
    scheme : str
        Authorization scheme the value is sent under
    """
    value: str = field(repr=False)
    expires_at: Optional[float] = None
    refreshable: bool = True
    skew: float = EXPIRY_SKEW
    scheme: str = "Bearer"

    @classmethod
    def issued(cls, value: str, expires_at: Optional[float], now: float) -> "Token":
        """A freshly issued token; short lifetimes get at most half as margin."""
        if expires_at is None:
            return cls(value)
        lifetime = max(expires_at - now, 0.0)
        return cls(value, expires_at, skew=min(EXPIRY_SKEW, lifetime / 2))

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - self.skew


class TokenState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REVOKED = "revoked"


class SsoResponse(BaseModel):
    """JSON document returned by the SSO token and logout endpoints."""

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    exp: Optional[float] = None
    expires_in: Optional[float] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None

    def expires_at(self, now: float) -> Optional[float]:
        if self.expires_in is not None:
            return now + self.expires_in
        if self.exp is not None:
            # The engine reports milliseconds since the epoch
            return self.exp / 1000.0 if self.exp > 1e11 else self.exp
        return None

    def raise_for_error(self, action: str) -> None:
        if self.error is None and self.error_code is None:
            return
        code = self.error_code or self.error
        description = self.error_description or self.error or ""
        raise AuthError(
            f"Error during SSO {action} {code}: {description}",
            code=code,
            description=self.error_description,
        )


def parse_sso_response(response: Response, action: str = "authentication") -> SsoResponse:
    """
    Decode an SSO reply.

    A top level JSON array is unwrapped to its first element. Anything that
    is not a JSON object is reported as an AuthError carrying the status.
    """
    try:
        data: Any = response.json()
    except ValueError:
        raise AuthError(
            f"SSO {action} failed: HTTP {response.code} {response.message}, "
            f"response is not JSON",
            status=response.code,
        )
    if isinstance(data, list):
        data = data[0] if data else {}
    if not isinstance(data, dict):
        raise AuthError(
            f"SSO {action} failed: unexpected response {data!r}",
            status=response.code,
        )
    try:
        return SsoResponse.model_validate(data)
    except ValidationError as exc:
        raise AuthError(f"SSO {action} failed: {exc}", status=response.code) from exc


def _engine_root(config: ConnectionConfig) -> str:
    parsed = urlparse(config.url)
    return f"{parsed.scheme}://{parsed.netloc}/ovirt-engine"


def _spnego_auth() -> Any:
    try:
        from requests_gssapi import HTTPSPNEGOAuth
    except ImportError as exc:
        raise ConfigError(
            "Kerberos authentication requires the requests-gssapi package",
            "kerberos",
        ) from exc
    return HTTPSPNEGOAuth()


class CredentialStrategy:
    """How a token is obtained and given back."""

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config

    def fetch(self, transport: Transport) -> Token:
        raise NotImplementedError

    def revoke(self, transport: Transport, token: Token) -> None:
        raise NotImplementedError


class SsoStrategy(CredentialStrategy):
    """Shared logic for strategies that talk to the SSO service."""

    entry_point = "token"

    @property
    def token_url(self) -> str:
        return self.config.sso_url or f"{_engine_root(self.config)}/sso/oauth/{self.entry_point}"

    @property
    def revoke_url(self) -> str:
        return self.config.sso_revoke_url or f"{_engine_root(self.config)}/services/sso-logout"

    def parameters(self) -> Dict[str, str]:
        return {"scope": SSO_SCOPE}

    def auth(self) -> Any:
        return None

    def fetch(self, transport: Transport) -> Token:
        now = time.time()
        response = transport.execute(
            "POST",
            self.token_url,
            headers=_FORM_HEADERS,
            body=urlencode(self.parameters()).encode("ascii"),
            auth=self.auth(),
        )
        payload = parse_sso_response(response)
        payload.raise_for_error("authentication")
        if not payload.access_token:
            raise AuthError(
                f"SSO authentication failed: HTTP {response.code} {response.message}, "
                f"no access token in response",
                status=response.code,
            )
        return Token.issued(payload.access_token, payload.expires_at(now), now)

    def revoke(self, transport: Transport, token: Token) -> None:
        response = transport.execute(
            "POST",
            self.revoke_url,
            headers=_FORM_HEADERS,
            body=urlencode({"scope": "", "token": token.value}).encode("ascii"),
        )
        if not response.ok:
            raise AuthError(
                f"SSO logout failed: HTTP {response.code} {response.message}",
                status=response.code,
            )
        if response.body.strip():
            parse_sso_response(response, "logout").raise_for_error("logout")


class PasswordStrategy(SsoStrategy):

    def __init__(self, config: ConnectionConfig, credentials: PasswordCredentials) -> None:
        super().__init__(config)
        self.credentials = credentials

    def parameters(self) -> Dict[str, str]:
        params = super().parameters()
        params.update({
            "grant_type": "password",
            "username": self.credentials.username,
            "password": self.credentials.password,
        })
        return params


class KerberosStrategy(SsoStrategy):

    entry_point = "token-http-auth"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self._auth = _spnego_auth()

    def parameters(self) -> Dict[str, str]:
        params = super().parameters()
        params["grant_type"] = "urn:ovirt:params:oauth:grant-type:http"
        return params

    def auth(self) -> Any:
        return self._auth


class StaticTokenStrategy(CredentialStrategy):
    """The caller owns the token: no SSO round trip, no refresh, no revoke."""

    def __init__(self, config: ConnectionConfig, credentials: TokenCredentials) -> None:
        super().__init__(config)
        self._token = Token(credentials.token, refreshable=False)

    def fetch(self, transport: Transport) -> Token:
        return self._token

    def revoke(self, transport: Transport, token: Token) -> None:
        return None


class BasicStrategy(CredentialStrategy):
    """Username and password sent as HTTP basic credentials; no SSO session."""

    def __init__(self, config: ConnectionConfig, credentials: BasicCredentials) -> None:
        super().__init__(config)
        raw = f"{credentials.username}:{credentials.password}".encode("utf-8")
        self._token = Token(
            base64.b64encode(raw).decode("ascii"),
            refreshable=False,
            scheme="Basic",
        )

    def fetch(self, transport: Transport) -> Token:
        return self._token

    def revoke(self, transport: Transport, token: Token) -> None:
        return None


def make_strategy(config: ConnectionConfig) -> CredentialStrategy:
    creds = config.credentials
    if isinstance(creds, PasswordCredentials):
        return PasswordStrategy(config, creds)
    if isinstance(creds, BasicCredentials):
        return BasicStrategy(config, creds)
    if isinstance(creds, KerberosCredentials):
        return KerberosStrategy(config)
    if isinstance(creds, TokenCredentials):
        return StaticTokenStrategy(config, creds)
    raise ConfigError(f"Unsupported credentials {type(creds).__name__}", "credentials")


class TokenManager:
    """
    Produces a valid bearer token on demand.

    Concurrent callers that find no usable token share one SSO exchange:
    the first becomes the leader and performs it, the others wait on its
    future and receive the same token or the same exception.

    Parameters
    ----------
    strategy : CredentialStrategy
        How tokens are obtained
    transport : Transport
        Used for SSO calls; no bearer token is attached to them
    """

    def __init__(
        self,
        strategy: CredentialStrategy,
        transport: Transport,
        *,
        clock: Any = time.time,
    ) -> None:
        self.strategy = strategy
        self.transport = transport
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[Token] = None
        self._inflight: Optional["Future[Token]"] = None
        self._revoked = False
        self._remote_logout = True

    @property
    def state(self) -> TokenState:
        with self._lock:
            if self._revoked:
                return TokenState.REVOKED
            if self._inflight is not None:
                return TokenState.AUTHENTICATING
            if self._token is None:
                return TokenState.UNAUTHENTICATED
            if self._token.is_expired(self._clock()):
                return TokenState.EXPIRED
            return TokenState.AUTHENTICATED

    def ensure_token(self) -> Token:
        """
        Return the cached token, authenticating first if there is none or
        it has expired.

        Raises
        ------
        AuthError
            The SSO exchange failed
        TransportError
            The SSO endpoint could not be reached
        ConnectionClosedError
            The token was revoked, before or during the exchange
        """
        with self._lock:
            if self._revoked:
                raise ConnectionClosedError()
            token = self._token
            if token is not None and not token.is_expired(self._clock()):
                return token
            flight = self._inflight
            leader = flight is None
            if leader:
                flight = self._inflight = Future()

        if not leader:
            return flight.result()

        logger.debug("Requesting SSO token using %s", type(self.strategy).__name__)
        try:
            token = self.strategy.fetch(self.transport)
        except BaseException as exc:
            with self._lock:
                self._inflight = None
            flight.set_exception(exc)
            raise

        with self._lock:
            self._inflight = None
            revoked = self._revoked
            if not revoked:
                self._token = token

        if revoked:
            # Closed during the exchange: log the new token out instead of handing it out
            if self._remote_logout:
                self._revoke_remote(token)
            closed = ConnectionClosedError()
            flight.set_exception(closed)
            raise closed

        flight.set_result(token)
        return token

    def invalidate(self, stale: Optional[Token] = None) -> bool:
        """
        Forget the cached token so the next ``ensure_token`` authenticates.

        When ``stale`` is given the cache is only dropped if it still holds
        that very token; a token refreshed meanwhile by another thread is
        kept. Returns True if the cache was dropped.
        """
        with self._lock:
            current = self._token
            if current is None or not current.refreshable:
                return False
            if stale is not None and current is not stale:
                return False
            self._token = None
            return True

    def revoke(self, remote: bool = True) -> None:
        """
        Drop the token for good. With ``remote`` the SSO session is logged
        out as well; errors doing so are logged, never raised.

        A token still being fetched when this is called is logged out by
        the fetching thread once it arrives; this call waits for that, so
        the transport is still usable for the logout.
        """
        with self._lock:
            if self._revoked:
                return
            self._revoked = True
            self._remote_logout = remote
            token, self._token = self._token, None
            flight = self._inflight

        if remote and token is not None:
            self._revoke_remote(token)
        if flight is not None:
            flight.exception()

    def _revoke_remote(self, token: Token) -> None:
        if not token.refreshable:
            return
        try:
            self.strategy.revoke(self.transport, token)
        except Error as exc:
            logger.warning("Failed to revoke SSO token: %s", exc)

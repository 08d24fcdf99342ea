"""
ovirt_sdk.core.connection - Connection façade
=============================================

The single entry point SDK users hold on to. Owns the transport, the
token manager and the dispatcher, and enforces the closed state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union
import logging
import threading

from ovirt_sdk.core.auth import TokenManager, TokenState, make_strategy
from ovirt_sdk.core.config import ConnectionConfig
from ovirt_sdk.core.dispatcher import RequestDispatcher
from ovirt_sdk.core.errors import ConfigError, ConnectionClosedError, Error
from ovirt_sdk.core.http import Request, Response
from ovirt_sdk.core.transport import Transport
from ovirt_sdk.services.system import SystemService


logger = logging.getLogger("ovirt_sdk.connection")


class Connection:
    """
    Connection to an oVirt engine.

    Construction validates the options but performs no network I/O; the
    SSO token is requested lazily by the first call that needs it.

    Parameters
    ----------
    url : str
        API root, e.g. "https://engine.example.com/ovirt-engine/api".
        A trailing ``/v4`` is accepted.
    username, password : str, optional
        Credentials for the SSO password grant
    config : ConnectionConfig, optional
        Prebuilt configuration; mutually exclusive with keyword options
    transport : Transport, optional
        Transport to use instead of one built from the configuration
    **options
        Any other ``ConnectionConfig.build`` option: ``kerberos``, ``token``,
        ``ca_file``, ``ca_certs``, ``insecure``, ``timeout``, ``compress``,
        ``proxy_url``, ``headers``, ``debug``, ``log``, ``sso_url``, ...

    Examples
    --------
    >>> with Connection(
    ...     url="https://engine.example.com/ovirt-engine/api",
    ...     username="admin@internal",
    ...     password="secret",
    ...     ca_file="ca.pem",
    ... ) as conn:
    ...     vms = conn.system_service().vms_service().list(search="name=web*")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        config: Optional[ConnectionConfig] = None,
        transport: Optional[Transport] = None,
        **options: Any,
    ) -> None:
        if config is None:
            config = ConnectionConfig.build(url, username, password, **options)
        elif url or username or password or options:
            raise ConfigError("Pass either a ConnectionConfig or keyword options, not both")

        strategy = make_strategy(config)
        if transport is None:
            transport = Transport.configure(config)

        self.config = config
        self._transport = transport
        self._tokens = TokenManager(strategy, transport)
        self._dispatcher = RequestDispatcher(config, transport)
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        **overrides: Any,
    ) -> "Connection":
        """Create a connection from ``OVIRT_*`` environment variables."""
        return cls(config=ConnectionConfig.from_env(env_file, **overrides))

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else self.token_state.value
        return f"<Connection {self.config.url} {state}>"

    @property
    def url(self) -> str:
        """The normalized API root URL."""
        return self.config.url

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def token_state(self) -> TokenState:
        return self._tokens.state

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError()

    # ---------------- public ops ----------------

    def authenticate(self) -> str:
        """
        Obtain an SSO token now instead of on the first request.

        Returns
        -------
        str
            The bearer token
        """
        self._check_open()
        return self._tokens.ensure_token().value

    def send(self, request: Request) -> Response:
        """
        Send a request and return its response.

        A 401 answer is taken to mean the token expired on the server side:
        the token is refreshed and the request is sent once more. A second
        401 is raised as ``AuthError``.

        Raises
        ------
        ConnectionClosedError
            If ``close()`` was already called
        AuthError, ProtocolFault, TransportError
            As classified by the dispatcher and transport
        """
        self._check_open()
        token = self._tokens.ensure_token()
        response = self._dispatcher.send(request, token.value, token.scheme)

        if response.code == 401 and token.refreshable:
            logger.debug(
                "%s %s returned 401, refreshing SSO token", request.method, request.path
            )
            self._tokens.invalidate(token)
            token = self._tokens.ensure_token()
            response = self._dispatcher.send(request, token.value, token.scheme)

        return self._dispatcher.check(response)

    def system_service(self) -> SystemService:
        """Root of the API service tree."""
        self._check_open()
        return SystemService(self, "")

    def test(self, raise_exception: bool = False) -> bool:
        """
        Check that the engine is reachable and the credentials work.

        Returns False on failure, or re-raises when ``raise_exception``.
        """
        try:
            self.system_service().get()
        except Error as exc:
            if raise_exception:
                raise
            logger.debug("Connection test for %s failed: %s", self.url, exc)
            return False
        return True

    def close(self, logout: bool = True) -> None:
        """
        Release the connection. With ``logout`` the SSO token is revoked
        first (best effort). Calling ``close`` again does nothing.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._tokens.revoke(remote=logout)
        finally:
            self._transport.close()

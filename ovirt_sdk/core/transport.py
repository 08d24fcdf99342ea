"""
ovirt_sdk.core.transport - HTTP transport
=========================================

Owns the single ``requests.Session`` shared by every request issued
through a connection:

- TLS trust (system store, CA file/directory, in-memory PEM, or insecure)
- Proxy and compression settings
- Connection pooling via ``HTTPAdapter``
- Mapping of ``requests`` failures onto ``TransportError`` kinds

Network failures are never retried here.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional, Union
from urllib.parse import quote, urlparse, urlunparse
import logging
import os
import re
import socket
import ssl
import threading
import time

import requests
import urllib3
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning, NameResolutionError
from urllib3.util.retry import Retry

from ovirt_sdk.core.config import ConnectionConfig
from ovirt_sdk.core.errors import (
    ConfigError,
    ConnectionClosedError,
    TransportError,
    TransportErrorKind,
)
from ovirt_sdk.core.http import Response


_SECRET_FIELDS = re.compile(r"((?:password|token)=)[^&]*")
_SECRET_JSON = re.compile(r'("(?:access_token|password|token)"\s*:\s*")[^"]*(")')


def mask_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Return a copy of ``headers`` safe to write to a log."""
    out = {}
    for key, value in headers.items():
        if key.lower() in ("authorization", "proxy-authorization"):
            scheme = value.split(" ", 1)[0] if " " in value else ""
            value = f"{scheme} ***".strip()
        out[key] = value
    return out


def mask_body(body: Union[bytes, str, None]) -> str:
    """Hide passwords and tokens in form or JSON bodies."""
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    text = _SECRET_FIELDS.sub(r"\1***", text)
    return _SECRET_JSON.sub(r"\1***\2", text)


class _TrustAdapter(HTTPAdapter):
    """HTTPAdapter whose pools verify peers against a custom SSL context."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs: Any) -> None:
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any):
        proxy_kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)

    def cert_verify(self, conn: Any, url: str, verify: Any, cert: Any) -> None:
        super().cert_verify(conn, url, verify, cert)
        # Only the context's CAs are trusted, not the requests default bundle
        conn.ca_certs = None
        conn.ca_cert_dir = None


def build_ssl_context(config: ConnectionConfig) -> Optional[ssl.SSLContext]:
    """
    Check the configured trust material and build an SSL context from it.

    Returns None when the system trust store (or insecure mode) applies.
    Raises ConfigError for unreadable files and malformed certificates.
    """
    if config.insecure:
        if config.ca_file or config.ca_certs:
            raise ConfigError(
                "insecure=True cannot be combined with ca_file or ca_certs",
                "insecure",
            )
        return None
    if not config.ca_file and not config.ca_certs:
        return None

    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if config.ca_file:
        path = config.ca_file
        if not os.path.exists(path) or not os.access(path, os.R_OK):
            raise ConfigError(f"CA file {path!r} does not exist or is not readable", "ca_file")
        try:
            if os.path.isdir(path):
                ctx.load_verify_locations(capath=path)
            else:
                ctx.load_verify_locations(cafile=path)
        except (ssl.SSLError, OSError) as exc:
            raise ConfigError(f"Invalid CA file {path!r}: {exc}", "ca_file") from exc
    for pem in config.ca_certs:
        try:
            ctx.load_verify_locations(cadata=pem)
        except (ssl.SSLError, ValueError) as exc:
            raise ConfigError(f"Malformed CA certificate: {exc}", "ca_certs") from exc
    return ctx


def _proxy_with_credentials(config: ConnectionConfig) -> Optional[str]:
    if not config.proxy_url:
        return None
    if not config.proxy_username:
        return config.proxy_url
    parsed = urlparse(config.proxy_url)
    userinfo = quote(config.proxy_username, safe="")
    if config.proxy_password:
        userinfo += ":" + quote(config.proxy_password, safe="")
    netloc = f"{userinfo}@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    stack = [exc]
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.append(getattr(current, "reason", None))
        stack.append(current.__cause__)
        stack.append(current.__context__)
        stack.extend(a for a in current.args if isinstance(a, BaseException))


def classify_error(exc: requests.exceptions.RequestException) -> TransportErrorKind:
    """Map a ``requests`` exception onto a TransportErrorKind."""
    if isinstance(exc, requests.exceptions.SSLError):
        return TransportErrorKind.TLS
    if isinstance(exc, requests.exceptions.ProxyError):
        return TransportErrorKind.PROXY
    if isinstance(exc, requests.exceptions.Timeout):
        return TransportErrorKind.TIMEOUT
    if isinstance(exc, requests.exceptions.ConnectionError):
        for cause in _causes(exc):
            if isinstance(cause, (socket.gaierror, NameResolutionError)):
                return TransportErrorKind.DNS
            if isinstance(cause, ssl.SSLError):
                return TransportErrorKind.TLS
        return TransportErrorKind.CONNECT
    return TransportErrorKind.OTHER


class Transport:
    """
    One configured HTTP client shared by all requests of a connection.

    Parameters
    ----------
    config : ConnectionConfig
        Validated configuration
    session : requests.Session
        Session prepared by :meth:`configure`
    verify : bool or str
        Value passed as ``verify`` to every request

    Examples
    --------
    >>> transport = Transport.configure(cfg)
    >>> response = transport.execute("GET", cfg.url)
    >>> transport.close()
    """

    def __init__(
        self,
        config: ConnectionConfig,
        session: Session,
        verify: Union[bool, str] = True,
    ) -> None:
        self.config = config
        self.session = session
        self.verify = verify
        self.timeout = config.timeout
        self.logger = config.log or logging.getLogger("ovirt_sdk.transport")
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def configure(cls, config: ConnectionConfig) -> "Transport":
        """Build the session; raises ConfigError for bad trust material."""
        ssl_context = build_ssl_context(config)

        if config.insecure:
            urllib3.disable_warnings(InsecureRequestWarning)
            verify: Union[bool, str] = False
        elif config.ca_file and not config.ca_certs:
            verify = config.ca_file
        else:
            verify = True

        sess = requests.Session()
        sess.trust_env = False

        retry = Retry(total=0, connect=0, read=0, redirect=0, raise_on_status=False)
        pool = dict(
            max_retries=retry,
            pool_connections=config.connections,
            pool_maxsize=config.connections,
        )
        if ssl_context is not None:
            sess.mount("https://", _TrustAdapter(ssl_context, **pool))
        else:
            sess.mount("https://", HTTPAdapter(**pool))
        sess.mount("http://", HTTPAdapter(**pool))

        proxy = _proxy_with_credentials(config)
        if proxy:
            sess.proxies.update({"http": proxy, "https": proxy})

        sess.headers.update({
            "User-Agent": config.user_agent,
            "Accept-Encoding": "gzip, deflate" if config.compress else "identity",
        })
        return cls(config, sess, verify=verify)

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
        auth: Any = None,
    ) -> Response:
        """
        Perform one HTTP exchange.

        Raises
        ------
        TransportError
            On connect, TLS, timeout, DNS or proxy failures
        ConnectionClosedError
            If the transport was closed
        """
        if self._closed:
            raise ConnectionClosedError()

        headers = dict(headers or {})
        if self.config.debug:
            self.logger.debug(
                "> %s %s headers=%s body=%s",
                method, url, mask_headers(headers), mask_body(body),
            )

        t0 = time.perf_counter()
        try:
            r = self.session.request(
                method=method,
                url=url,
                headers=headers,
                data=body,
                timeout=self.timeout,
                verify=self.verify,
                auth=auth,
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as exc:
            kind = classify_error(exc)
            self.logger.debug("%s %s failed: %s", method, url, kind.value)
            raise TransportError(kind, url, str(exc)) from exc

        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %sms", method.upper(), url, round(dt, 1))

        response = Response(
            code=r.status_code,
            headers=dict(r.headers),
            body=r.content or b"",
            message=r.reason or "",
        )
        if self.config.debug:
            self.logger.debug(
                "< %s %s headers=%s body=%s",
                response.code, response.message,
                dict(response.headers), mask_body(response.body),
            )
        return response

    def close(self) -> None:
        """Release pooled sockets. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.session.close()

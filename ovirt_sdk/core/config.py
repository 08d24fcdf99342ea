"""
ovirt_sdk.core.config - Connection configuration
================================================

Typed, validated connection options. A ``ConnectionConfig`` is immutable
once built; every contradiction is reported as a ``ConfigError`` before
any network traffic happens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse, urlunparse
import logging
import os

from dotenv import load_dotenv

from ovirt_sdk import __version__
from ovirt_sdk.core.errors import ConfigError


DEFAULT_USER_AGENT = f"PythonSDK/{__version__}"

AUTH_MODES = ("sso", "basic")


@dataclass(frozen=True)
class PasswordCredentials:
    """SSO password grant."""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class KerberosCredentials:
    """SSO negotiate grant using the caller's Kerberos ticket."""


@dataclass(frozen=True)
class TokenCredentials:
    """Bearer token obtained elsewhere; used as-is, never refreshed."""
    token: str = field(repr=False)


@dataclass(frozen=True)
class BasicCredentials:
    """HTTP basic authentication sent with every request, no SSO."""
    username: str
    password: str = field(repr=False)


Credentials = Union[
    PasswordCredentials, KerberosCredentials, TokenCredentials, BasicCredentials
]


def normalize_url(url: Optional[str]) -> str:
    """
    Validate the API URL and strip a trailing slash and ``/v4`` suffix.

    >>> normalize_url("https://engine.example.com/ovirt-engine/api/v4/")
    'https://engine.example.com/ovirt-engine/api'
    """
    if not url:
        raise ConfigError("Missing url. Pass url or set OVIRT_URL.", "url")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Invalid url {url!r}: expected http(s)://host/path", "url")
    path = parsed.path.rstrip("/")
    if path.endswith("/v4"):
        path = path[: -len("/v4")]
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def _ca_tuple(ca_certs: Any) -> Tuple[str, ...]:
    if ca_certs is None:
        return ()
    if isinstance(ca_certs, (bytes, str)):
        ca_certs = [ca_certs]
    out = []
    for item in ca_certs:
        if isinstance(item, bytes):
            try:
                item = item.decode("ascii")
            except UnicodeDecodeError:
                raise ConfigError("CA certificates must be PEM encoded", "ca_certs")
        out.append(item)
    return tuple(out)


def _select_credentials(
    username: Optional[str],
    password: Optional[str],
    kerberos: bool,
    token: Optional[str],
    auth: Optional[str] = None,
) -> Credentials:
    mode = (auth or "sso").lower()
    if mode not in AUTH_MODES:
        raise ConfigError(
            f"Unknown auth mode {auth!r}, expected one of: {', '.join(AUTH_MODES)}",
            "auth",
        )

    chosen = []
    if username is not None or password is not None:
        if not username or password is None:
            raise ConfigError("Both username and password are required", "username")
        if mode == "basic":
            chosen.append(BasicCredentials(username, password))
        else:
            chosen.append(PasswordCredentials(username, password))
    if kerberos:
        chosen.append(KerberosCredentials())
    if token:
        chosen.append(TokenCredentials(token))

    if not chosen:
        raise ConfigError(
            "Missing credentials. Pass username/password, kerberos=True or token.",
            "credentials",
        )
    if len(chosen) > 1:
        names = ", ".join(type(c).__name__ for c in chosen)
        raise ConfigError(
            f"Exactly one credential strategy may be used, got: {names}",
            "credentials",
        )
    if mode == "basic" and not isinstance(chosen[0], BasicCredentials):
        raise ConfigError("auth='basic' requires username and password", "auth")
    return chosen[0]


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Connection configuration for the oVirt engine API.

    Every instance is normalized and validated on construction.
    :meth:`build` is the friendlier entry point: it accepts loose
    credentials (username/password, kerberos, token) and picks the
    matching ``Credentials`` object.

    Parameters
    ----------
    url : str
        API root, e.g. "https://engine.example.com/ovirt-engine/api"
    credentials : Credentials
        Exactly one of SSO password, Kerberos, static token or HTTP basic
    insecure : bool
        Skip TLS certificate verification
    ca_file : str, optional
        PEM file or directory with trusted CA certificates
    ca_certs : tuple of str
        PEM encoded CA certificates
    proxy_url : str, optional
        Upstream HTTP proxy
    compress : bool
        Ask the server for gzip compressed responses
    timeout : float, optional
        Per request timeout in seconds; None waits forever
    connections : int
        Size of the HTTP connection pool
    debug : bool
        Log the full request/response exchange
    log : logging.Logger, optional
        Logger receiving debug output
    headers : mapping
        Extra headers sent with every business request
    sso_url, sso_revoke_url : str, optional
        Override the SSO token and logout endpoints
    """
    url: str
    credentials: Credentials
    insecure: bool = False
    ca_file: Optional[str] = None
    ca_certs: Tuple[str, ...] = ()
    proxy_url: Optional[str] = None
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = field(default=None, repr=False)
    compress: bool = True
    timeout: Optional[float] = None
    connections: int = 10
    debug: bool = False
    log: Optional[logging.Logger] = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    sso_url: Optional[str] = None
    sso_revoke_url: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "url", normalize_url(self.url))

        if not isinstance(
            self.credentials,
            (PasswordCredentials, KerberosCredentials, TokenCredentials, BasicCredentials),
        ):
            raise ConfigError(
                f"Unsupported credentials {type(self.credentials).__name__}",
                "credentials",
            )

        certs = _ca_tuple(self.ca_certs)
        set_(self, "ca_certs", certs)
        if self.insecure and (self.ca_file or certs):
            raise ConfigError(
                "insecure=True cannot be combined with ca_file or ca_certs",
                "insecure",
            )

        if self.timeout is not None:
            if self.timeout <= 0:
                raise ConfigError("timeout must be a positive number of seconds", "timeout")
            set_(self, "timeout", float(self.timeout))
        if self.connections < 1:
            raise ConfigError("connections must be at least 1", "connections")

        extra = dict(self.headers or {})
        for name in extra:
            if name.lower() == "authorization":
                raise ConfigError("The Authorization header is managed by the SDK", "headers")
        set_(self, "headers", MappingProxyType(extra))

        if self.proxy_url is None and (self.proxy_username or self.proxy_password):
            raise ConfigError("proxy_username/proxy_password require proxy_url", "proxy_url")

        for option in ("sso_url", "sso_revoke_url"):
            value = getattr(self, option)
            if value is not None and not urlparse(value).netloc:
                raise ConfigError(f"{option} must be an absolute URL", option)

        for option in ("insecure", "compress", "debug"):
            set_(self, option, bool(getattr(self, option)))
        set_(self, "connections", int(self.connections))

    @classmethod
    def build(
        cls,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        kerberos: bool = False,
        token: Optional[str] = None,
        auth: Optional[str] = None,
        insecure: bool = False,
        ca_file: Optional[str] = None,
        ca_certs: Union[bytes, str, Sequence[Union[bytes, str]], None] = None,
        proxy_url: Optional[str] = None,
        proxy_username: Optional[str] = None,
        proxy_password: Optional[str] = None,
        compress: bool = True,
        timeout: Optional[float] = None,
        connections: int = 10,
        debug: bool = False,
        log: Optional[logging.Logger] = None,
        headers: Optional[Mapping[str, str]] = None,
        sso_url: Optional[str] = None,
        sso_revoke_url: Optional[str] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> "ConnectionConfig":
        """
        Validate options and return an immutable configuration.

        ``auth`` selects how username/password are used: ``"sso"`` (the
        default) exchanges them for a bearer token, ``"basic"`` sends them
        as HTTP basic credentials with every request.
        """
        base = normalize_url(url)
        credentials = _select_credentials(username, password, kerberos, token, auth)

        return cls(
            url=base,
            credentials=credentials,
            insecure=insecure,
            ca_file=ca_file,
            ca_certs=ca_certs,
            proxy_url=proxy_url,
            proxy_username=proxy_username,
            proxy_password=proxy_password,
            compress=compress,
            timeout=timeout,
            connections=connections,
            debug=debug,
            log=log,
            headers=headers or {},
            sso_url=sso_url,
            sso_revoke_url=sso_revoke_url,
            user_agent=user_agent,
        )

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        **overrides: Any,
    ) -> "ConnectionConfig":
        """
        Build a configuration from ``OVIRT_*`` environment variables.

        A ``.env`` file is loaded first (``env_file``, or ``./.env`` when it
        exists); variables already set in the environment win. Keyword
        arguments override anything read from the environment.

        Recognized variables: OVIRT_URL, OVIRT_USERNAME, OVIRT_PASSWORD,
        OVIRT_TOKEN, OVIRT_KERBEROS, OVIRT_AUTH, OVIRT_CA_FILE,
        OVIRT_INSECURE, OVIRT_TIMEOUT, OVIRT_PROXY_URL, OVIRT_DEBUG.
        """
        path = Path(env_file) if env_file else Path.cwd() / ".env"
        if path.exists():
            load_dotenv(path)

        env = os.environ
        options: dict = {
            "url": env.get("OVIRT_URL"),
            "username": env.get("OVIRT_USERNAME") or None,
            "password": env.get("OVIRT_PASSWORD") or None,
            "token": env.get("OVIRT_TOKEN") or None,
            "kerberos": _env_flag(env.get("OVIRT_KERBEROS")),
            "auth": env.get("OVIRT_AUTH") or None,
            "ca_file": env.get("OVIRT_CA_FILE") or None,
            "insecure": _env_flag(env.get("OVIRT_INSECURE")),
            "proxy_url": env.get("OVIRT_PROXY_URL") or None,
            "debug": _env_flag(env.get("OVIRT_DEBUG")),
        }
        if env.get("OVIRT_TIMEOUT"):
            try:
                options["timeout"] = float(env["OVIRT_TIMEOUT"])
            except ValueError:
                raise ConfigError("OVIRT_TIMEOUT must be a number", "timeout")
        options.update(overrides)
        return cls.build(**options)


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")

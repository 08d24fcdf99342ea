"""
ovirt_sdk.core - Connectivity and authentication
================================================

- ConnectionConfig: validated, immutable connection options
- Transport: the shared HTTP session (TLS, proxy, pooling)
- TokenManager: SSO token cache with single-flight refresh
- RequestDispatcher: request building and fault classification
- Connection: the façade SDK users hold on to

"""

from ovirt_sdk.core.errors import (
    AuthError,
    ConfigError,
    ConnectionClosedError,
    Error,
    NotFoundError,
    ProtocolFault,
    TransportError,
    TransportErrorKind,
)
from ovirt_sdk.core.config import (
    ConnectionConfig,
    BasicCredentials,
    KerberosCredentials,
    PasswordCredentials,
    TokenCredentials,
)
from ovirt_sdk.core.http import Request, Response
from ovirt_sdk.core.transport import Transport
from ovirt_sdk.core.auth import Token, TokenManager, TokenState
from ovirt_sdk.core.dispatcher import RequestDispatcher
from ovirt_sdk.core.connection import Connection

__all__ = [
    "AuthError",
    "ConfigError",
    "ConnectionClosedError",
    "Error",
    "NotFoundError",
    "ProtocolFault",
    "TransportError",
    "TransportErrorKind",
    "ConnectionConfig",
    "BasicCredentials",
    "KerberosCredentials",
    "PasswordCredentials",
    "TokenCredentials",
    "Request",
    "Response",
    "Transport",
    "Token",
    "TokenManager",
    "TokenState",
    "RequestDispatcher",
    "Connection",
]

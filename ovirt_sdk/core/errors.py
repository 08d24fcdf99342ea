"""
ovirt_sdk.core.errors - Exception hierarchy
===========================================

Every failure raised by the SDK derives from :class:`Error`:

- ConfigError: invalid or contradictory connection options
- TransportError: connect, TLS, timeout, DNS or proxy failures
- AuthError: the SSO exchange failed, or a request was rejected with 401
  after the token was refreshed
- ProtocolFault: any other non-success business response
- ConnectionClosedError: the connection was used after ``close()``
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ovirt_sdk.core.http import Response


class Error(Exception):
    """Base class for all SDK errors."""


class ConfigError(Error, ValueError):
    """Raised at construction time when connection options are invalid."""

    def __init__(self, message: str, option: Optional[str] = None):
        super().__init__(message)
        self.option = option


class TransportErrorKind(enum.Enum):
    CONNECT = "connect"
    TLS = "tls"
    TIMEOUT = "timeout"
    DNS = "dns"
    PROXY = "proxy"
    OTHER = "other"


_RETRYABLE_KINDS = frozenset({
    TransportErrorKind.CONNECT,
    TransportErrorKind.TIMEOUT,
    TransportErrorKind.DNS,
    TransportErrorKind.PROXY,
})


class TransportError(Error):
    """
    Low level network failure.

    The SDK never retries these; ``kind`` and ``retryable`` are exposed so
    that calling code can apply its own retry policy.

    Attributes
    ----------
    kind : TransportErrorKind
        Classification of the failure
    url : str
        The URL that was being requested
    """

    def __init__(self, kind: TransportErrorKind, url: str, message: str):
        super().__init__(f"{kind.value} error for {url}: {message}")
        self.kind = kind
        self.url = url

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_KINDS


class AuthError(Error):
    """
    Authentication failure.

    Attributes
    ----------
    code : str, optional
        SSO error code (``error_code`` or ``error`` field) when the server sent one
    description : str, optional
        Server provided description
    status : int, optional
        HTTP status of the failing response
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.description = description
        self.status = status


class ProtocolFault(Error):
    """
    Non-success response from a business endpoint.

    Attributes
    ----------
    code : int
        HTTP status code
    reason : str
        Fault reason, or the HTTP reason phrase when the body had none
    detail : str, optional
        Fault detail as sent by the engine
    response : Response
        The full response
    """

    def __init__(
        self,
        code: int,
        reason: str,
        detail: Optional[str] = None,
        response: Optional["Response"] = None,
    ):
        message = f"Fault reason is \"{reason}\""
        if detail:
            message += f". Fault detail is \"{detail}\""
        message += f". HTTP response code is {code}."
        super().__init__(message)
        self.code = code
        self.reason = reason
        self.detail = detail
        self.response = response


class NotFoundError(ProtocolFault):
    """The requested resource does not exist (HTTP 404)."""


class ConnectionClosedError(Error):
    """Raised by every connection operation after ``close()``."""

    def __init__(self, message: str = "Connection is closed"):
        super().__init__(message)

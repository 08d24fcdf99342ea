"""
ovirt_sdk.core.dispatcher - Request dispatch and response classification
========================================================================

Turns a logical ``Request`` plus a bearer token into an HTTP exchange and
maps the outcome to a ``Response`` or a typed fault. Holds no mutable
state and can be shared freely between threads.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple
from urllib.parse import quote, urlencode
import json
import xml.etree.ElementTree as ET

from ovirt_sdk.core.config import ConnectionConfig
from ovirt_sdk.core.errors import AuthError, NotFoundError, ProtocolFault
from ovirt_sdk.core.http import Request, Response
from ovirt_sdk.core.transport import Transport


API_VERSION = "4"


def _strip_ns(tag: str) -> str:
    """Strip XML namespace from a tag name."""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _child_text(elem: ET.Element, name: str) -> Optional[str]:
    for child in elem:
        if _strip_ns(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def parse_fault(response: Response) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract ``(reason, detail)`` from a fault body.

    Understands the engine's XML ``<fault>`` element, also when nested in an
    ``<action>`` result, and the JSON forms ``{"reason": ..., "detail": ...}``
    and ``{"fault": {...}}``. Returns ``(None, None)`` when nothing could be
    decoded.
    """
    body = response.body.strip()
    if not body:
        return None, None

    if body[:1] in (b"{", b"["):
        try:
            data = json.loads(body)
        except ValueError:
            return None, None
        if isinstance(data, dict) and isinstance(data.get("fault"), dict):
            data = data["fault"]
        if isinstance(data, dict):
            reason = data.get("reason")
            detail = data.get("detail")
            return (str(reason) if reason else None, str(detail) if detail else None)
        return None, None

    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None, None
    for elem in root.iter():
        if _strip_ns(elem.tag) == "fault":
            return _child_text(elem, "reason"), _child_text(elem, "detail")
    return None, None


class RequestDispatcher:
    """
    Builds wire requests and classifies responses.

    Parameters
    ----------
    config : ConnectionConfig
        Supplies the base URL and static headers
    transport : Transport
        Performs the exchange
    """

    def __init__(self, config: ConnectionConfig, transport: Transport) -> None:
        self.config = config
        self.transport = transport

    def build_url(self, request: Request) -> str:
        """
        Compose ``base + path + ;matrix + ?query``; query pairs keep the
        order they were given in.
        """
        path = request.path
        if path and not path.startswith("/"):
            path = "/" + path
        url = self.config.url + path
        for key, value in request.matrix:
            url += f";{quote(key, safe='')}={quote(value, safe='')}"
        if request.query:
            url += "?" + urlencode(list(request.query))
        return url

    def build_headers(
        self, request: Request, token: Optional[str], scheme: str = "Bearer"
    ) -> Dict[str, str]:
        headers = {
            "User-Agent": self.config.user_agent,
            "Version": API_VERSION,
            "Accept": "application/xml",
        }
        if request.body is not None:
            headers["Content-Type"] = "application/xml"
        headers.update(self.config.headers)
        headers.update(request.headers)
        if token:
            headers["Authorization"] = f"{scheme} {token}"
        return headers

    def send(
        self, request: Request, token: Optional[str], scheme: str = "Bearer"
    ) -> Response:
        """Send ``request`` with ``token`` attached under ``scheme``; no classification."""
        return self.transport.execute(
            request.method,
            self.build_url(request),
            headers=self.build_headers(request, token, scheme),
            body=request.body,
        )

    def check(self, response: Response) -> Response:
        """
        Return ``response`` unless it is a failure.

        Raises
        ------
        AuthError
            On 401
        NotFoundError
            On 404
        ProtocolFault
            On any other status >= 400
        """
        if response.code < 400:
            return response
        reason, detail = parse_fault(response)
        if response.code == 401:
            raise AuthError(
                f"HTTP 401 {response.message or 'Unauthorized'}"
                + (f": {detail or reason}" if (detail or reason) else ""),
                code=reason,
                description=detail,
                status=401,
            )
        if reason is None:
            reason = response.message or f"HTTP {response.code}"
        cls = NotFoundError if response.code == 404 else ProtocolFault
        raise cls(response.code, reason, detail, response)

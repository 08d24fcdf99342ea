"""
Pytest configuration and shared fixtures.
"""

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import pytest

from ovirt_sdk.core.http import Response


ENGINE = "https://engine.example.com"
API_URL = f"{ENGINE}/ovirt-engine/api"
SSO_TOKEN_PATH = "/ovirt-engine/sso/oauth/token"
SSO_LOGOUT_PATH = "/ovirt-engine/services/sso-logout"


def json_response(code: int, payload: Any) -> Response:
    return Response(
        code=code,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload).encode("utf-8"),
        message="OK" if code < 400 else "Error",
    )


def xml_response(code: int, body: str, message: str = "") -> Response:
    return Response(
        code=code,
        headers={"Content-Type": "application/xml"},
        body=body.encode("utf-8"),
        message=message or ("OK" if code < 400 else "Error"),
    )


@dataclass
class Call:
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[bytes]
    auth: Any

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def token(self) -> Optional[str]:
        value = self.headers.get("Authorization", "")
        return value[len("Bearer "):] if value.startswith("Bearer ") else None


class FakeTransport:
    """
    Scripted stand-in for Transport.

    Routes are keyed by URL path suffix. A route is either a list of
    responses (consumed in order, the last one repeats) or a callable
    receiving the Call.
    """

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.close_calls = 0
        self.closed_at: Optional[int] = None
        self._routes: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def route(self, suffix: str, *responses: Any) -> "FakeTransport":
        if len(responses) == 1 and callable(responses[0]):
            self._routes[suffix] = responses[0]
        else:
            self._routes[suffix] = list(responses)
        return self

    def execute(self, method, url, *, headers=None, body=None, auth=None) -> Response:
        call = Call(method, url, dict(headers or {}), body, auth)
        with self._lock:
            self.calls.append(call)
            handler = self._match(call.path)
            if isinstance(handler, list):
                response = handler.pop(0) if len(handler) > 1 else handler[0]
                return response
        return handler(call)

    def _match(self, path: str) -> Any:
        best = None
        for suffix in self._routes:
            if path.endswith(suffix) and (best is None or len(suffix) > len(best)):
                best = suffix
        if best is None:
            raise AssertionError(f"No route for {path}")
        return self._routes[best]

    def count(self, suffix: str) -> int:
        return sum(1 for c in self.calls if c.path.endswith(suffix))

    def calls_to(self, suffix: str) -> List[Call]:
        return [c for c in self.calls if c.path.endswith(suffix)]

    def close(self) -> None:
        self.close_calls += 1
        if self.closed_at is None:
            self.closed_at = len(self.calls)


def sso_sequence(*tokens: str, delay: float = 0.0) -> Callable[[Call], Response]:
    """SSO handler issuing the given tokens in order, optionally slowly."""
    issued = iter(tokens)
    lock = threading.Lock()

    def handler(call: Call) -> Response:
        if delay:
            time.sleep(delay)
        with lock:
            token = next(issued)
        return json_response(200, {"access_token": token, "token_type": "bearer"})

    return handler


@pytest.fixture
def transport():
    """A FakeTransport answering SSO with T1 and the API root with <api/>."""
    fake = FakeTransport()
    fake.route(SSO_TOKEN_PATH, json_response(200, {"access_token": "T1", "token_type": "bearer"}))
    fake.route(SSO_LOGOUT_PATH, json_response(200, {}))
    fake.route("/ovirt-engine/api", xml_response(200, "<api/>"))
    return fake


@pytest.fixture
def connection(transport):
    from ovirt_sdk import Connection

    conn = Connection(
        url=API_URL,
        username="admin@internal",
        password="secret",
        transport=transport,
    )
    yield conn
    conn.close()


@pytest.fixture
def sample_fault_xml():
    """Fault document as sent by the engine."""
    return """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<fault>
    <detail>[Cannot add VM. The given name is already in use.]</detail>
    <reason>Operation Failed</reason>
</fault>"""


@pytest.fixture
def sample_action_fault_xml():
    """Failed action wrapping a fault."""
    return """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<action>
    <fault>
        <detail>[Cannot run VM. There is no host that satisfies current scheduling constraints.]</detail>
        <reason>Operation Failed</reason>
    </fault>
    <status>failed</status>
</action>"""

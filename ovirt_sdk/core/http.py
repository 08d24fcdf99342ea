"""
ovirt_sdk.core.http - Wire level request and response
=====================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple, Union
import json
import xml.etree.ElementTree as ET


Pairs = Tuple[Tuple[str, str], ...]
PairsInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_pairs(items: PairsInput) -> Pairs:
    """
    Normalize a mapping or an iterable of pairs into an ordered tuple of
    string pairs. List values in a mapping expand into repeated keys.
    """
    if not items:
        return ()
    source = items.items() if isinstance(items, Mapping) else items
    out = []
    for key, value in source:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            out.extend((str(key), _render(v)) for v in value)
        else:
            out.append((str(key), _render(value)))
    return tuple(out)


@dataclass(frozen=True)
class Request:
    """
    A logical request against the API.

    Parameters
    ----------
    method : str
        HTTP method, e.g. "GET"
    path : str
        Path relative to the API root, e.g. "/vms/123"
    query : mapping or list of pairs, optional
        Query parameters; order is preserved and keys may repeat
    headers : mapping, optional
        Extra headers for this request only
    body : bytes or str, optional
        Request body, already serialized
    matrix : mapping or list of pairs, optional
        Matrix parameters appended to the path as ``;name=value``

    Examples
    --------
    >>> Request("GET", "/vms", query=[("search", "name=web*"), ("max", 10)])
    """
    method: str = "GET"
    path: str = ""
    query: Pairs = ()
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    matrix: Pairs = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "query", to_pairs(self.query))
        object.__setattr__(self, "matrix", to_pairs(self.matrix))
        object.__setattr__(self, "headers", dict(self.headers or {}))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))


@dataclass(frozen=True)
class Response:
    """
    A response as received from the server.

    The body is left undecoded; ``json()`` and ``xml()`` are conveniences
    for callers that marshal it themselves.
    """
    code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    message: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.code < 300

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.lower()
        return ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    def xml(self) -> ET.Element:
        return ET.fromstring(self.body)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lname = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lname:
                return value
        return default

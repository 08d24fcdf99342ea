"""
ovirt_sdk.services.base - Generic resource services
===================================================

Services locate resources under the API root and issue requests through
the owning ``Connection``. Bodies are sent and returned undecoded; typed
marshaling is layered on top by callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional, Union
from urllib.parse import quote

from ovirt_sdk.core.http import PairsInput, Request, Response

if TYPE_CHECKING:
    from ovirt_sdk.core.connection import Connection


Body = Union[bytes, str]


class Service:
    """
    Base class for everything reachable from ``Connection.system_service()``.

    Parameters
    ----------
    connection : Connection
        Connection the requests are sent through
    path : str
        Path relative to the API root, "" for the root itself
    """

    def __init__(self, connection: "Connection", path: str) -> None:
        self._connection = connection
        self._path = path

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._path or '/'}>"

    @property
    def path(self) -> str:
        return self._path

    def _child_path(self, segment: str) -> str:
        return f"{self._path}/{quote(str(segment).strip('/'), safe='/')}"

    def _send(
        self,
        method: str,
        *,
        path: Optional[str] = None,
        query: PairsInput = None,
        body: Optional[Body] = None,
        headers: Optional[Mapping[str, str]] = None,
        matrix: PairsInput = None,
    ) -> Response:
        request = Request(
            method,
            self._path if path is None else path,
            query=query,
            headers=headers or {},
            body=body,
            matrix=matrix,
        )
        return self._connection.send(request)

    def service(self, path: str) -> "EntityService":
        """Locate a sub-resource by relative path, e.g. ``"nics"``."""
        return EntityService(self._connection, self._child_path(path))


class CollectionService(Service):
    """
    A collection such as ``/vms``.

    Examples
    --------
    >>> vms = conn.system_service().vms_service()
    >>> vms.list(search="name=web*", max=10).xml()
    >>> vms.item_service("123").get()
    """

    def list(
        self,
        *,
        search: Optional[str] = None,
        max: Optional[int] = None,
        follow: Optional[str] = None,
        case_sensitive: Optional[bool] = None,
        headers: Optional[Mapping[str, str]] = None,
        **query: Any,
    ) -> Response:
        """
        List the members of the collection.

        Parameters
        ----------
        search : str, optional
            Engine search expression, e.g. "name=web* and status=up"
        max : int, optional
            Maximum number of results
        follow : str, optional
            Comma separated links to inline, e.g. "nics,disk_attachments"
        case_sensitive : bool, optional
            Whether ``search`` is case sensitive
        **query
            Any other query parameter
        """
        params = [
            ("search", search),
            ("max", max),
            ("follow", follow),
            ("case_sensitive", case_sensitive),
        ]
        params.extend(query.items())
        return self._send("GET", query=params, headers=headers)

    def add(self, body: Body, **query: Any) -> Response:
        """Create a new member from an already serialized document."""
        return self._send("POST", query=query, body=body)

    def item_service(self, id: str) -> "EntityService":
        return EntityService(self._connection, self._child_path(id))


class EntityService(Service):
    """A single resource such as ``/vms/123``."""

    def get(
        self,
        *,
        follow: Optional[str] = None,
        matrix: PairsInput = None,
        headers: Optional[Mapping[str, str]] = None,
        **query: Any,
    ) -> Response:
        params = [("follow", follow)]
        params.extend(query.items())
        return self._send("GET", query=params, matrix=matrix, headers=headers)

    def update(self, body: Body, **query: Any) -> Response:
        return self._send("PUT", query=query, body=body)

    def remove(self, **query: Any) -> Response:
        return self._send("DELETE", query=query)

    def action(self, name: str, body: Optional[Body] = None) -> Response:
        """
        Invoke an action such as ``start`` or ``shutdown``.

        The engine expects an ``<action>`` document; an empty one is sent
        when no body is given.
        """
        return self._send(
            "POST",
            path=self._child_path(name),
            body=body if body is not None else b"<action/>",
        )

"""
oVirt engine Python SDK (ovirt_sdk)
===================================

Connection, authentication and request dispatch for the oVirt engine
REST API.

Usage
-----
>>> from ovirt_sdk import Connection
>>>
>>> with Connection(
...     url="https://engine.example.com/ovirt-engine/api",
...     username="admin@internal",
...     password="secret",
...     ca_file="ca.pem",
... ) as conn:
...     system = conn.system_service()
...     print(system.get().text)
...     vms = system.vms_service().list(search="name=web*")

Subpackages
-----------
- ovirt_sdk.core: Configuration, transport, SSO tokens, dispatch, connection
- ovirt_sdk.services: Resource service tree rooted at ``system_service()``

"""

__version__ = "0.1.0"

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
from ovirt_sdk.core.config import ConnectionConfig
from ovirt_sdk.core.http import Request, Response
from ovirt_sdk.core.connection import Connection

from ovirt_sdk.services import CollectionService, EntityService, SystemService

__all__ = [
    # Version
    "__version__",
    # Core
    "Connection",
    "ConnectionConfig",
    "Request",
    "Response",
    # Errors
    "Error",
    "ConfigError",
    "TransportError",
    "TransportErrorKind",
    "AuthError",
    "ProtocolFault",
    "NotFoundError",
    "ConnectionClosedError",
    # Services
    "SystemService",
    "CollectionService",
    "EntityService",
]

"""
ovirt_sdk.services.system - API root service
============================================
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ovirt_sdk.core.http import Response
from ovirt_sdk.services.base import CollectionService, Service


class SystemService(Service):
    """
    Root of the service tree, returned by ``Connection.system_service()``.

    Top level collections are declared in ``COLLECTIONS`` (accessor name to
    URL segment); each entry gets a ``<name>_service()`` method.

    Examples
    --------
    >>> system = conn.system_service()
    >>> system.get().xml().findtext("product_info/version/full_version")
    >>> system.storage_domains_service().list()
    >>> system.collection("vnicprofiles").list()
    """

    COLLECTIONS: Dict[str, str] = {
        "affinity_labels": "affinitylabels",
        "bookmarks": "bookmarks",
        "clusters": "clusters",
        "cpu_profiles": "cpuprofiles",
        "data_centers": "datacenters",
        "disk_profiles": "diskprofiles",
        "disks": "disks",
        "events": "events",
        "external_host_providers": "externalhostproviders",
        "groups": "groups",
        "hosts": "hosts",
        "icons": "icons",
        "instance_types": "instancetypes",
        "jobs": "jobs",
        "mac_pools": "macpools",
        "networks": "networks",
        "operating_systems": "operatingsystems",
        "roles": "roles",
        "storage_connections": "storageconnections",
        "storage_domains": "storagedomains",
        "tags": "tags",
        "templates": "templates",
        "users": "users",
        "vm_pools": "vmpools",
        "vms": "vms",
        "vnic_profiles": "vnicprofiles",
    }

    def get(
        self,
        *,
        headers: Optional[Mapping[str, str]] = None,
        **query: Any,
    ) -> Response:
        """Fetch the API summary document (product info, counters, links)."""
        return self._send("GET", query=query, headers=headers)

    def collection(self, name: str) -> CollectionService:
        """
        Locate a top level collection by accessor name ("storage_domains")
        or by URL segment ("storagedomains").
        """
        segment = self.COLLECTIONS.get(name, name)
        return CollectionService(self._connection, self._child_path(segment))


def _collection_accessor(name: str, segment: str):
    def accessor(self: SystemService) -> CollectionService:
        return self.collection(segment)

    accessor.__name__ = f"{name}_service"
    accessor.__qualname__ = f"SystemService.{name}_service"
    accessor.__doc__ = f"Service for the ``/{segment}`` collection."
    return accessor


for _name, _segment in SystemService.COLLECTIONS.items():
    setattr(SystemService, f"{_name}_service", _collection_accessor(_name, _segment))

"""
ovirt_sdk.services - Resource service tree
==========================================

- SystemService: API root, entry point for every collection
- CollectionService: list/add/locate members of a collection
- EntityService: get/update/remove/act on a single resource

"""

from ovirt_sdk.services.base import CollectionService, EntityService, Service
from ovirt_sdk.services.system import SystemService

__all__ = [
    "Service",
    "CollectionService",
    "EntityService",
    "SystemService",
]

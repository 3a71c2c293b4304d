"""Inventory subsystem — typed resource records and the snapshot cache."""

from appwatch.inventory.cache import FileSnapshotSource, InventoryCache
from appwatch.inventory.models import (
    LXC,
    VM,
    DockerContainer,
    Inventory,
    Resource,
    ResourceKind,
    node_of,
    parse_resource,
)

__all__ = [
    "LXC",
    "VM",
    "DockerContainer",
    "FileSnapshotSource",
    "Inventory",
    "InventoryCache",
    "Resource",
    "ResourceKind",
    "node_of",
    "parse_resource",
]

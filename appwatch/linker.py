"""Resource auto-linking — which inventory resource does a host point at?

Used to pre-fill an application's resource link when its host is entered or
edited. Matching is by exact IP only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from appwatch.inventory.models import Inventory, ResourceKind, node_of
from appwatch.resolver import find_ip_by_hostname, is_ipv4_literal

DETECT_PRIORITY = (ResourceKind.VM, ResourceKind.LXC, ResourceKind.DOCKER)


@dataclass(frozen=True)
class ResourceLink:
    kind: ResourceKind
    id: str
    node: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"resource_type": self.kind.value, "resource_id": self.id, "resource_node": self.node}


def candidate_ip(host: str, inventory: Inventory) -> str | None:
    if is_ipv4_literal(host):
        return host
    return find_ip_by_hostname(host, inventory)


def detect_resource(host: str, inventory: Inventory) -> ResourceLink | None:
    ip = candidate_ip(host, inventory)
    if not ip:
        return None

    for kind in DETECT_PRIORITY:
        for resource in inventory.of_kind(kind):
            if resource.ip_address == ip:
                return ResourceLink(kind=kind, id=resource.id, node=node_of(resource))
    return None

"""Typed inventory records — one variant per virtualization resource kind.

Records are produced by an external collector and only read here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union


class ResourceKind(str, Enum):
    VM = "vm"
    LXC = "lxc"
    DOCKER = "docker"


# ── Resource variants ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VM:
    """A Proxmox virtual machine."""

    kind: ClassVar[ResourceKind] = ResourceKind.VM

    id: str
    name: str
    ip_address: str | None = None
    node: str | None = None


@dataclass(frozen=True)
class LXC:
    """A Proxmox LXC container."""

    kind: ClassVar[ResourceKind] = ResourceKind.LXC

    id: str
    name: str
    ip_address: str | None = None
    node: str | None = None


@dataclass(frozen=True)
class DockerContainer:
    """A Docker container. Docker resources are not pinned to a node."""

    kind: ClassVar[ResourceKind] = ResourceKind.DOCKER

    id: str
    name: str
    ip_address: str | None = None


Resource = Union[VM, LXC, DockerContainer]

_VARIANTS: dict[ResourceKind, type] = {
    ResourceKind.VM: VM,
    ResourceKind.LXC: LXC,
    ResourceKind.DOCKER: DockerContainer,
}


def node_of(resource: Resource) -> str | None:
    if isinstance(resource, (VM, LXC)):
        return resource.node
    return None


def parse_resource(kind: ResourceKind, raw: dict[str, Any]) -> Resource:
    """Build a typed resource from one snapshot entry.

    Proxmox entries may carry their id as ``vmid`` instead of ``id``.
    Raises ``ValueError`` when the entry has no usable id.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"expected a mapping, got {type(raw).__name__}")

    raw_id = raw.get("id") or raw.get("vmid")
    if raw_id in (None, ""):
        raise ValueError("resource entry has no id")

    ip = raw.get("ip_address") or None
    fields: dict[str, Any] = {
        "id": str(raw_id),
        "name": str(raw.get("name") or ""),
        "ip_address": str(ip) if ip else None,
    }
    if kind in (ResourceKind.VM, ResourceKind.LXC):
        node = raw.get("node")
        fields["node"] = str(node) if node else None

    return _VARIANTS[kind](**fields)


# ── Snapshot ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Inventory:
    """Immutable view of every known resource, in collector order."""

    vms: tuple[VM, ...] = ()
    lxc: tuple[LXC, ...] = ()
    docker: tuple[DockerContainer, ...] = ()

    def of_kind(self, kind: ResourceKind) -> tuple[Resource, ...]:
        if kind == ResourceKind.VM:
            return self.vms
        if kind == ResourceKind.LXC:
            return self.lxc
        if kind == ResourceKind.DOCKER:
            return self.docker
        raise ValueError(f"Unknown resource kind: {kind}")

    def find(self, kind: ResourceKind, resource_id: str) -> Resource | None:
        return next((r for r in self.of_kind(kind) if r.id == resource_id), None)

    def counts(self) -> dict[str, int]:
        return {
            ResourceKind.VM.value: len(self.vms),
            ResourceKind.LXC.value: len(self.lxc),
            ResourceKind.DOCKER.value: len(self.docker),
        }

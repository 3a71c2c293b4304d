"""Address resolution — the effective network address to probe for an app.

Priority: literal IPv4 host > linked resource IP > fuzzy hostname match
against VM names, then LXC names.
"""

from __future__ import annotations

import re

from appwatch.apps.models import Application
from appwatch.inventory.models import Inventory, Resource

IPV4_PATTERN = re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}")

MDNS_SUFFIX = ".local"


def is_ipv4_literal(host: str) -> bool:
    return IPV4_PATTERN.fullmatch(host) is not None


def normalize_hostname(host: str) -> str:
    """Lowercase and drop a trailing ``.local``."""
    name = host.strip().lower()
    if name.endswith(MDNS_SUFFIX):
        name = name[: -len(MDNS_SUFFIX)]
    return name


def _name_matches(hostname: str, resource: Resource) -> bool:
    name = resource.name.lower()
    return name == hostname or hostname in name or name in hostname


def find_ip_by_hostname(host: str, inventory: Inventory) -> str | None:
    """First VM, then LXC, whose name matches ``host`` in either direction."""
    hostname = normalize_hostname(host)
    if not hostname:
        return None

    for candidates in (inventory.vms, inventory.lxc):
        for resource in candidates:
            if not resource.name or not resource.ip_address:
                continue
            if _name_matches(hostname, resource):
                return resource.ip_address
    return None


def linked_ip(app: Application, inventory: Inventory) -> str | None:
    """IP of the resource the app is explicitly linked to, if any.

    Dangling links resolve to ``None``.
    """
    kind = app.resource_kind
    if kind is None or not app.resource_id:
        return None
    resource = inventory.find(kind, app.resource_id)
    if resource is None:
        return None
    return resource.ip_address or None


def resolve_address(app: Application, inventory: Inventory) -> str | None:
    if is_ipv4_literal(app.host):
        return app.host

    ip = linked_ip(app, inventory)
    if ip:
        return ip

    return find_ip_by_hostname(app.host, inventory)

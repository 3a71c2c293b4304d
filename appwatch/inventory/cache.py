"""Inventory cache — loads the collector snapshot once and serves it to readers.

The snapshot is parsed off the event loop and swapped in as a new immutable
``Inventory``; readers never observe a half-updated inventory.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import yaml

from appwatch.config import settings
from appwatch.inventory.models import (
    Inventory,
    Resource,
    ResourceKind,
    parse_resource,
)

logger = logging.getLogger(__name__)

# Top-level snapshot keys, one list per kind
SNAPSHOT_KEYS: dict[ResourceKind, str] = {
    ResourceKind.VM: "vms",
    ResourceKind.LXC: "lxc",
    ResourceKind.DOCKER: "docker",
}


class SnapshotSource(Protocol):
    def load(self) -> Mapping[str, Any]: ...


class FileSnapshotSource:
    """Reads the collector's snapshot file (YAML or JSON)."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path or settings.inventory_path)

    def load(self) -> Mapping[str, Any]:
        raw = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"snapshot root must be a mapping, got {type(raw).__name__}")
        return raw


class InventoryCache:
    """Process-wide cache of VM / LXC / Docker records.

    ``ensure_loaded`` is single-flight: concurrent callers await the same
    in-flight load instead of triggering duplicate reads.
    """

    def __init__(self, source: SnapshotSource | None = None) -> None:
        self._source = source or FileSnapshotSource()
        self._inventory = Inventory()
        self._loaded = False
        self._inflight: asyncio.Future[Inventory] | None = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def ensure_loaded(self) -> Inventory:
        """Load the snapshot unless a load already completed."""
        if self._loaded:
            return self._inventory
        return await self._join_or_start()

    async def refresh(self) -> Inventory:
        """Force a re-read of the snapshot (joins a load already in flight)."""
        return await self._join_or_start()

    def get_all(self, kind: ResourceKind) -> tuple[Resource, ...]:
        return self._inventory.of_kind(kind)

    def snapshot(self) -> Inventory:
        return self._inventory

    async def _join_or_start(self) -> Inventory:
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        # Shielded so one cancelled waiter does not cancel the shared load
        return await asyncio.shield(self._inflight)

    async def _load(self) -> Inventory:
        try:
            loop = asyncio.get_event_loop()
            inventory = await loop.run_in_executor(None, self._read_snapshot)
            self._inventory = inventory
            self._loaded = True
            logger.info(
                "Inventory loaded: %d VMs, %d LXC, %d Docker",
                len(inventory.vms), len(inventory.lxc), len(inventory.docker),
            )
            return inventory
        finally:
            self._inflight = None

    def _read_snapshot(self) -> Inventory:
        try:
            raw = self._source.load()
        except FileNotFoundError as e:
            logger.warning("Inventory snapshot not found: %s", e)
            return Inventory()
        except Exception as e:
            logger.error("Failed to read inventory snapshot: %s", e)
            return Inventory()

        return Inventory(
            vms=self._parse_kind(raw, ResourceKind.VM),
            lxc=self._parse_kind(raw, ResourceKind.LXC),
            docker=self._parse_kind(raw, ResourceKind.DOCKER),
        )

    @staticmethod
    def _parse_kind(raw: Mapping[str, Any], kind: ResourceKind) -> tuple[Any, ...]:
        entries = raw.get(SNAPSHOT_KEYS[kind])
        if entries is None:
            return ()
        if not isinstance(entries, list):
            logger.warning(
                "Inventory section '%s' is not a list, treating as empty",
                SNAPSHOT_KEYS[kind],
            )
            return ()

        resources = []
        for entry in entries:
            try:
                resources.append(parse_resource(kind, entry))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s entry: %s", kind.value, e)
        return tuple(resources)

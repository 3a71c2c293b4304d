"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from appwatch.apps.models import Application, ApplicationView
from appwatch.apps.store import AppStore
from appwatch.health.probes import ProbeError, ProbeResult
from appwatch.inventory.cache import InventoryCache
from appwatch.inventory.models import LXC, VM, DockerContainer, Inventory


def make_app(**overrides: Any) -> Application:
    fields: dict[str, Any] = {
        "id": 1,
        "name": "Web",
        "protocol": "http",
        "host": "web01.local",
        "port": 8080,
        "health_path": "/health",
        "health_type": "http",
    }
    fields.update(overrides)
    return Application(**fields)


def view(app: Application | None = None, resolved_ip: str | None = None, **overrides: Any) -> ApplicationView:
    return ApplicationView(app=app or make_app(**overrides), resolved_ip=resolved_ip)


class StaticSource:
    """Snapshot source serving a fixed mapping; counts reads."""

    def __init__(self, data: Mapping[str, Any] | None = None, error: Exception | None = None) -> None:
        self.data = dict(data or {})
        self.error = error
        self.calls = 0

    def load(self) -> Mapping[str, Any]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.data


class FakeProber:
    """Prober double: canned outcome per URL, records every call.

    Outcomes are ``ProbeResult`` instances or exceptions to raise. URLs with
    no outcome succeed with 200.
    """

    def __init__(
        self,
        outcomes: dict[str, ProbeResult | Exception] | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, url: str, kind: Any) -> ProbeResult:
        self.calls.append((url, getattr(kind, "value", kind)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(url, self.delay))
            outcome = self.outcomes.get(url, ProbeResult(ok=True, latency_ms=12.5, status_code=200))
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    @property
    def urls(self) -> list[str]:
        return [u for u, _ in self.calls]


@pytest.fixture
def inventory() -> Inventory:
    return Inventory(
        vms=(
            VM(id="100", name="web01", ip_address="10.0.0.5", node="pve1"),
            VM(id="101", name="database-primary", ip_address="10.0.0.6", node="pve1"),
            VM(id="102", name="no-ip", ip_address=None, node="pve2"),
        ),
        lxc=(
            LXC(id="200", name="proxy", ip_address="10.0.0.7", node="pve2"),
            LXC(id="201", name="web01-staging", ip_address="10.0.0.8", node="pve2"),
        ),
        docker=(
            DockerContainer(id="abc123", name="grafana", ip_address="172.17.0.2"),
        ),
    )


@pytest.fixture
def snapshot_data() -> dict[str, Any]:
    return {
        "vms": [
            {"vmid": 100, "name": "web01", "ip_address": "10.0.0.5", "node": "pve1"},
        ],
        "lxc": [
            {"id": "200", "name": "proxy", "ip_address": "10.0.0.7", "node": "pve2"},
        ],
        "docker": [
            {"id": "abc123", "name": "grafana", "ip_address": "172.17.0.2"},
        ],
    }


@pytest.fixture
def inventory_cache(snapshot_data: dict[str, Any]) -> InventoryCache:
    return InventoryCache(StaticSource(snapshot_data))


@pytest.fixture
def store(tmp_path: Path) -> AppStore:
    return AppStore(db_path=tmp_path / "test_apps.db")

"""Application records and the views derived from them.

``Application`` is the persisted record. ``HealthResult`` and
``ApplicationView`` are ephemeral: rebuilt on every load and poll cycle.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from appwatch.inventory.models import ResourceKind


class Protocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    TCP = "tcp"


class HealthType(str, Enum):
    HTTP = "http"
    TCP = "tcp"


class HealthStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


ICONS = ("activity", "server", "database", "globe", "monitor")


class ValidationError(ValueError):
    """Raised when an application record is not acceptable."""


def _values(enum_cls: type[Enum]) -> set[str]:
    return {m.value for m in enum_cls}


@dataclass
class Application:
    """A user-registered monitored network endpoint."""

    id: int = 0
    name: str = ""
    protocol: str = "http"
    host: str = ""
    port: int = 80
    path: str = "/"
    tag: str = ""
    icon: str = "activity"
    health_path: str = "/health"
    health_type: str = "http"
    resource_type: str | None = None
    resource_id: str | None = None
    resource_node: str | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def validate(self) -> None:
        """Raise ``ValidationError`` describing every invalid field."""
        problems = []
        if not self.name.strip():
            problems.append("name is required")
        if self.protocol not in _values(Protocol):
            problems.append(f"invalid protocol: {self.protocol!r}")
        if not self.host.strip():
            problems.append("host is required")
        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            problems.append(f"port must be between 1 and 65535, got {self.port!r}")
        if self.health_type not in _values(HealthType):
            problems.append(f"invalid health_type: {self.health_type!r}")
        if self.icon not in ICONS:
            problems.append(f"invalid icon: {self.icon!r}")
        if self.resource_type:
            if self.resource_type not in _values(ResourceKind):
                problems.append(f"invalid resource_type: {self.resource_type!r}")
            elif not self.resource_id:
                problems.append("resource_id is required when resource_type is set")
        if problems:
            raise ValidationError("; ".join(problems))

    @property
    def resource_kind(self) -> ResourceKind | None:
        if self.resource_type in _values(ResourceKind):
            return ResourceKind(self.resource_type)
        return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Application":
        return cls(
            id=row["id"],
            name=row.get("name", ""),
            protocol=row.get("protocol", "http"),
            host=row.get("host", ""),
            port=row.get("port", 80),
            path=row.get("path") or "/",
            tag=row.get("tag") or "",
            icon=row.get("icon") or "activity",
            health_path=row.get("health_path") or "/health",
            health_type=row.get("health_type") or "http",
            resource_type=row.get("resource_type") or None,
            resource_id=row.get("resource_id") or None,
            resource_node=row.get("resource_node") or None,
            created_at=row.get("created_at", 0.0),
            updated_at=row.get("updated_at", 0.0),
        )


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class HealthResult:
    """Outcome of the most recent liveness probe for an application."""

    status: HealthStatus
    last_check: str = field(default_factory=utc_now)
    latency_ms: float | None = None
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check,
            "latency_ms": self.latency_ms,
            "status_code": self.status_code,
            "error": self.error,
        }


@dataclass(frozen=True)
class ApplicationView:
    """An application joined with its resolved address and latest health."""

    app: Application
    resolved_ip: str | None = None
    health: HealthResult | None = None

    @property
    def status(self) -> HealthStatus:
        return self.health.status if self.health else HealthStatus.UNKNOWN

    def with_health(self, health: HealthResult) -> "ApplicationView":
        return replace(self, health=health)

    def to_dict(self) -> dict[str, Any]:
        d = self.app.to_dict()
        d["resolved_ip"] = self.resolved_ip
        d["health"] = self.health.to_dict() if self.health else None
        return d

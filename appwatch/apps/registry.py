"""Application registry — joins stored apps, inventory and health.

Owns the published list of ``ApplicationView`` objects consumed by the API:

  load_apps():  inventory → store → resolve → publish → background poll
  poll result:  merged into the current list and republished in one swap

Every publish replaces the whole tuple; views are never mutated in place.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from appwatch.apps.models import (
    Application,
    ApplicationView,
    HealthStatus,
    ValidationError,
)
from appwatch.apps.store import AppNotFoundError
from appwatch.health.poller import HealthPoller
from appwatch.health.probes import NetworkProber, Prober
from appwatch.inventory.cache import InventoryCache
from appwatch.linker import ResourceLink, detect_resource
from appwatch.resolver import resolve_address

logger = logging.getLogger(__name__)

ALL = "all"
NO_RESOURCE = "none"

GENERIC_LOAD_ERROR = "Unable to load applications"
GENERIC_SAVE_ERROR = "Unable to save the application"
GENERIC_DELETE_ERROR = "Unable to delete the application"


class LoadError(Exception):
    """The application list or the inventory could not be loaded."""


class PersistenceError(Exception):
    """A create / update / delete action was rejected by the store."""

    def __init__(self, message: str, not_found: bool = False) -> None:
        self.not_found = not_found
        super().__init__(message)


class AppRepository(Protocol):
    def list_all(self) -> list[Application]: ...
    def create(self, app: Application) -> Application: ...
    def update(self, app_id: int, **changes: Any) -> Application: ...
    def delete(self, app_id: int) -> None: ...


# ── Filtering ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AppFilter:
    """View filter. ``all`` (or empty) disables a criterion."""

    text: str = ""
    status: str = ALL
    tag: str = ALL
    resource_type: str = ALL

    def matches(self, view: ApplicationView) -> bool:
        app = view.app

        if self.text:
            needle = self.text.lower()
            haystacks = (app.name, app.host, app.tag or "")
            if not any(needle in h.lower() for h in haystacks):
                return False

        if self.status and self.status != ALL:
            # Missing health and "unknown" share a bucket
            if view.status.value != self.status:
                return False

        if self.tag and self.tag != ALL and app.tag != self.tag:
            return False

        if self.resource_type and self.resource_type != ALL:
            if self.resource_type == NO_RESOURCE:
                if app.resource_type:
                    return False
            elif app.resource_type != self.resource_type:
                return False

        return True


def filter_views(views: Sequence[ApplicationView], criteria: AppFilter) -> list[ApplicationView]:
    return [v for v in views if criteria.matches(v)]


# ── Registry ─────────────────────────────────────────────────────────────────


class AppRegistry:
    """Orchestrates loading, address resolution and health polling."""

    def __init__(
        self,
        store: AppRepository,
        inventory: InventoryCache,
        prober: Prober | None = None,
        poll_interval: float | None = None,
        probe_concurrency: int | None = None,
        on_change: Callable[[tuple[ApplicationView, ...]], Any] | None = None,
        on_notice: Callable[[str, str], Any] | None = None,
    ) -> None:
        self.store = store
        self.inventory = inventory
        self.on_change = on_change  # SSE broadcast callback
        self.on_notice = on_notice  # (level, message) for user-visible toasts
        self.poller = HealthPoller(
            prober=prober or NetworkProber(),
            publish=self._apply_health,
            source=lambda: self._views,
            interval=poll_interval,
            concurrency=probe_concurrency,
        )
        self._views: tuple[ApplicationView, ...] = ()
        self.loading = False
        self.last_error: str | None = None

    @property
    def views(self) -> tuple[ApplicationView, ...]:
        return self._views

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        await self.load_apps()
        await self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()

    # ── Loading ───────────────────────────────────────────────────────────

    async def load_apps(self, poll: bool = True) -> tuple[ApplicationView, ...]:
        """Reload apps, publish them with resolved addresses, then poll in the background.

        On failure the previous views are kept and one error notice is emitted.
        """
        self.loading = True
        try:
            apps = await self._fetch()
        except LoadError as e:
            self.last_error = str(e) or GENERIC_LOAD_ERROR
            logger.error("Failed to load applications: %s", self.last_error)
            self._notify("error", self.last_error)
            return self._views
        finally:
            self.loading = False

        self.last_error = None
        inventory = self.inventory.snapshot()
        views = [ApplicationView(app=a, resolved_ip=resolve_address(a, inventory)) for a in apps]
        for v in views:
            if v.resolved_ip is None:
                logger.debug("No IP resolved for %s (host: %s)", v.app.name, v.app.host)

        self._publish(views)
        if poll:
            self.poller.trigger(views)
        return self._views

    async def _fetch(self) -> list[Application]:
        try:
            await self.inventory.ensure_loaded()
            await self.inventory.refresh()
            loop = asyncio.get_event_loop()
            return await loop.run_in_executor(None, self.store.list_all)
        except Exception as e:
            raise LoadError(str(e)) from e

    def _publish(self, views: Sequence[ApplicationView]) -> None:
        self._views = tuple(views)
        if self.on_change:
            try:
                self.on_change(self._views)
            except Exception:
                logger.exception("Publish callback error")

    def _apply_health(self, checked: list[ApplicationView]) -> None:
        """Merge a finished poll cycle into the current list.

        An entry takes the polled health only if its app record and resolved
        address are unchanged since the cycle started.
        """
        by_id = {v.app.id: v for v in checked}
        merged = []
        for current in self._views:
            polled = by_id.get(current.app.id)
            if polled is not None and polled.app == current.app and polled.resolved_ip == current.resolved_ip:
                merged.append(polled)
            else:
                merged.append(current)
        self._publish(merged)

    # ── Queries ───────────────────────────────────────────────────────────

    def filter(self, criteria: AppFilter | None = None, **kwargs: str) -> list[ApplicationView]:
        return filter_views(self._views, criteria or AppFilter(**kwargs))

    def get(self, app_id: int) -> ApplicationView | None:
        return next((v for v in self._views if v.app.id == app_id), None)

    def tags(self) -> list[str]:
        return sorted({v.app.tag for v in self._views if v.app.tag})

    def status_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in HealthStatus}
        for v in self._views:
            counts[v.status.value] += 1
        return counts

    async def detect(self, host: str) -> ResourceLink | None:
        """Suggest a resource link for ``host``."""
        inventory = await self.inventory.ensure_loaded()
        return detect_resource(host, inventory)

    # ── Mutations ─────────────────────────────────────────────────────────

    async def create_app(self, data: dict[str, Any]) -> Application:
        fields = {k: v for k, v in data.items() if k != "id"}
        created = await self._persist(
            lambda: self.store.create(Application(**fields)), fallback=GENERIC_SAVE_ERROR,
        )
        self._notify("success", f"Application '{created.name}' created")
        await self.load_apps()
        return created

    async def update_app(self, app_id: int, data: dict[str, Any]) -> Application:
        updated = await self._persist(
            lambda: self.store.update(app_id, **data), fallback=GENERIC_SAVE_ERROR,
        )
        self._notify("success", f"Application '{updated.name}' updated")
        await self.load_apps()
        return updated

    async def delete_app(self, app_id: int) -> None:
        await self._persist(self.store.delete, app_id, fallback=GENERIC_DELETE_ERROR)
        self._notify("success", "Application deleted")
        await self.load_apps()

    async def _persist(self, fn: Callable[..., Any], *args: Any, fallback: str) -> Any:
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except (ValidationError, AppNotFoundError, sqlite3.Error) as e:
            message = str(e) or fallback
            logger.warning("Persistence action failed: %s", message)
            self._notify("error", message)
            raise PersistenceError(message, not_found=isinstance(e, AppNotFoundError)) from e
        except TypeError as e:
            # Unexpected field names in the payload
            logger.warning("Rejected application payload: %s", e)
            self._notify("error", fallback)
            raise PersistenceError(fallback) from e

    def _notify(self, level: str, message: str) -> None:
        if self.on_notice:
            try:
                self.on_notice(level, message)
            except Exception:
                logger.exception("Notice callback error")

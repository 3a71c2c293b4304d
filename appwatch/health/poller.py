"""Health poller — probes every application, then publishes the whole set.

One cycle fans out one probe per application (bounded by a semaphore), waits
for every probe, and hands the complete list to the ``publish`` callback in a
single call. Cycles are serialized, so results are published in cycle order.

A timer re-runs the cycle every ``interval`` seconds over whatever list the
``source`` callable returns at that moment.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from appwatch.apps.models import ApplicationView, HealthResult, HealthStatus
from appwatch.config import settings
from appwatch.health.probes import Prober, ProbeError
from appwatch.resolver import MDNS_SUFFIX

logger = logging.getLogger(__name__)

DNS_FAILURE_MARKERS = ("no such host", "lookup", "DNS", ".local")

Publish = Callable[[list[ApplicationView]], Any]
Source = Callable[[], Sequence[ApplicationView]]


# ── Classification ───────────────────────────────────────────────────────────


def probe_target(view: ApplicationView) -> str:
    return view.resolved_ip or view.app.host


def build_endpoint(view: ApplicationView) -> str:
    app = view.app
    return f"{app.protocol}://{probe_target(view)}:{app.port}{app.health_path}"


def unresolved_mdns_result(view: ApplicationView) -> HealthResult:
    return HealthResult(
        status=HealthStatus.OFFLINE,
        error=(
            f"No IP found for {view.app.host}. Link this application to a "
            f"resource (VM/LXC/Docker) or use an IP address directly."
        ),
    )


def classify_failure(target: str, message: str, status_code: int | None = None) -> HealthResult:
    """Map a failed probe to offline (name resolution) or unknown (anything else)."""
    if any(marker in message for marker in DNS_FAILURE_MARKERS):
        return HealthResult(
            status=HealthStatus.OFFLINE,
            status_code=status_code,
            error=f"DNS: {target} could not be resolved",
        )
    return HealthResult(
        status=HealthStatus.UNKNOWN,
        status_code=status_code,
        error=message,
    )


async def probe_health(prober: Prober, url: str, kind: str, target: str) -> HealthResult:
    """Run one probe and turn its outcome into a ``HealthResult``. Never raises."""
    try:
        result = await prober.probe(url, kind)
    except ProbeError as e:
        return classify_failure(target, str(e) or "Unknown error")
    except Exception as e:
        logger.warning("Probe for %s raised %s", url, type(e).__name__, exc_info=True)
        return classify_failure(target, f"{type(e).__name__}: {e}")

    if not result.ok:
        return classify_failure(target, f"HTTP {result.status_code}", result.status_code)

    return HealthResult(
        status=HealthStatus.ONLINE,
        latency_ms=result.latency_ms,
        status_code=result.status_code,
    )


async def check_view(view: ApplicationView, prober: Prober) -> ApplicationView:
    """Probe a single application. Never raises."""
    if not view.resolved_ip and view.app.host.strip().lower().endswith(MDNS_SUFFIX):
        return view.with_health(unresolved_mdns_result(view))

    health = await probe_health(prober, build_endpoint(view), view.app.health_type, probe_target(view))
    return view.with_health(health)


# ── Poller ───────────────────────────────────────────────────────────────────


class HealthPoller:
    """Runs poll cycles on demand and on a fixed timer."""

    def __init__(
        self,
        prober: Prober,
        publish: Publish,
        source: Source,
        interval: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.prober = prober
        self.publish = publish
        self.source = source
        self.interval = interval if interval is not None else settings.poll_interval_seconds
        self.concurrency = max(1, concurrency if concurrency is not None else settings.probe_concurrency)
        self._cycle_lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._running = False
        self._closed = False
        self.cycles_completed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def run_cycle(self, views: Sequence[ApplicationView] | None = None) -> list[ApplicationView]:
        """Probe every view and publish the complete result list once."""
        async with self._cycle_lock:
            batch = list(self.source() if views is None else views)
            semaphore = asyncio.Semaphore(self.concurrency)

            async def _bounded(view: ApplicationView) -> ApplicationView:
                async with semaphore:
                    return await check_view(view, self.prober)

            results = await asyncio.gather(*(_bounded(v) for v in batch))
            checked = list(results)
            self.cycles_completed += 1

            if self._closed:
                logger.debug("Poller stopped, discarding %d results", len(checked))
                return checked

            online = sum(1 for v in checked if v.status == HealthStatus.ONLINE)
            logger.debug("Poll cycle done: %d/%d online", online, len(checked))
            try:
                self.publish(checked)
            except Exception:
                logger.exception("Health publish callback error")
            return checked

    def trigger(self, views: Sequence[ApplicationView] | None = None) -> asyncio.Task[list[ApplicationView]]:
        """Start a cycle in the background without waiting for it."""
        task = asyncio.ensure_future(self.run_cycle(views))
        self._pending.add(task)
        task.add_done_callback(self._on_cycle_done)
        return task

    def _on_cycle_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Poll cycle failed", exc_info=exc)

    async def start(self) -> None:
        """Start the repeating timer."""
        if self._running:
            return
        self._running = True
        self._closed = False
        self._timer = asyncio.create_task(self._timer_loop(), name="health-poller")
        logger.info("Health poller started (interval=%ss, concurrency=%d)", self.interval, self.concurrency)

    async def stop(self) -> None:
        """Cancel the timer. In-flight cycles finish but are not published."""
        self._running = False
        self._closed = True
        if self._timer:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        logger.info("Health poller stopped")

    async def _timer_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                # asyncio.wait leaves the cycle running if the timer is cancelled
                await asyncio.wait({self.trigger()})
        finally:
            self._running = False

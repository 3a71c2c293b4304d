"""API routes for the application registry.

Endpoints:
  GET    /api/apps                 — filtered application views (+ tags, counts)
  POST   /api/apps                 — create an application
  PUT    /api/apps/{id}            — replace an application's fields
  DELETE /api/apps/{id}            — delete an application
  POST   /api/apps/refresh         — reload apps + inventory, trigger a poll
  GET    /api/apps/detect?host=    — suggest a resource link for a host
  GET    /api/apps/stream          — SSE stream of view updates and notices
  GET    /api/health/http?url=     — run a single probe against a URL
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlsplit

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from appwatch.apps.models import ApplicationView, HealthType
from appwatch.apps.registry import ALL, AppFilter, AppRegistry, PersistenceError
from appwatch.health.poller import probe_health
from appwatch.health.probes import NetworkProber

logger = logging.getLogger(__name__)

apps_router = APIRouter()

# ── SSE subscriber list (in-memory) ──────────────────────────────────────────

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def _broadcast(event: str, data: Any) -> None:
    for q in _sse_queues:
        try:
            q.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            pass  # slow consumer, drop


def broadcast_views(views: Sequence[ApplicationView]) -> None:
    """Push the full published list to all SSE subscribers."""
    _broadcast("apps", [v.to_dict() for v in views])


def broadcast_notice(level: str, message: str) -> None:
    _broadcast("notice", {"level": level, "message": message})


# ── Request models ───────────────────────────────────────────────────────────


class AppBody(BaseModel):
    name: str
    protocol: str = "http"
    host: str
    port: int = 80
    path: str = "/"
    tag: str = ""
    icon: str = "activity"
    health_path: str = "/health"
    health_type: str = "http"
    resource_type: str | None = None
    resource_id: str | None = None
    resource_node: str | None = None


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_registry(request: Request) -> AppRegistry:
    return request.app.state.registry  # type: ignore[no-any-return]


def _http_error(e: PersistenceError) -> HTTPException:
    return HTTPException(status_code=404 if e.not_found else 400, detail=str(e))


def _body_fields(body: AppBody) -> dict[str, Any]:
    fields = body.model_dump()
    # Empty strings from forms mean "no resource linked"
    for key in ("resource_type", "resource_id", "resource_node"):
        fields[key] = fields[key] or None
    return fields


# ── Endpoints ────────────────────────────────────────────────────────────────


@apps_router.get("/apps")
def list_apps(
    request: Request,
    q: str = "",
    status: str = ALL,
    tag: str = ALL,
    resource_type: str = ALL,
) -> dict[str, Any]:
    """List application views, optionally filtered."""
    registry = _get_registry(request)
    views = registry.filter(AppFilter(text=q, status=status, tag=tag, resource_type=resource_type))
    return {
        "apps": [v.to_dict() for v in views],
        "count": len(views),
        "total": len(registry.views),
        "tags": registry.tags(),
        "counts": registry.status_counts(),
        "loading": registry.loading,
        "error": registry.last_error,
    }


@apps_router.post("/apps/refresh")
async def refresh_apps(request: Request) -> dict[str, Any]:
    """Reload the application list and inventory; health follows asynchronously."""
    registry = _get_registry(request)
    views = await registry.load_apps()
    return {
        "apps": [v.to_dict() for v in views],
        "count": len(views),
        "error": registry.last_error,
    }


@apps_router.get("/apps/detect")
async def detect(host: str, request: Request) -> dict[str, Any]:
    """Suggest the VM / LXC / Docker resource a host corresponds to."""
    link = await _get_registry(request).detect(host)
    return {"host": host, "detected": link is not None, "link": link.to_dict() if link else None}


@apps_router.get("/apps/stream")
async def apps_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of published application views."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=50)
    _sse_queues.append(queue)
    registry = _get_registry(request)

    async def event_generator():
        try:
            yield f"event: init\ndata: {json.dumps([v.to_dict() for v in registry.views])}\n\n"

            while True:
                if await request.is_disconnected():
                    break
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: {item['event']}\ndata: {json.dumps(item['data'])}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            _sse_queues.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@apps_router.get("/apps/{app_id}")
def get_app(app_id: int, request: Request) -> dict[str, Any]:
    view = _get_registry(request).get(app_id)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Application {app_id} not found")
    return {"app": view.to_dict()}


@apps_router.post("/apps", status_code=201)
async def create_app(body: AppBody, request: Request) -> dict[str, Any]:
    try:
        app = await _get_registry(request).create_app(_body_fields(body))
    except PersistenceError as e:
        raise _http_error(e)
    return {"app": app.to_dict(), "status": "created"}


@apps_router.put("/apps/{app_id}")
async def update_app(app_id: int, body: AppBody, request: Request) -> dict[str, Any]:
    try:
        app = await _get_registry(request).update_app(app_id, _body_fields(body))
    except PersistenceError as e:
        raise _http_error(e)
    return {"app": app.to_dict(), "status": "updated"}


@apps_router.delete("/apps/{app_id}")
async def delete_app(app_id: int, request: Request) -> dict[str, Any]:
    try:
        await _get_registry(request).delete_app(app_id)
    except PersistenceError as e:
        raise _http_error(e)
    return {"id": app_id, "status": "deleted"}


# ── Probe endpoint ───────────────────────────────────────────────────────────


@apps_router.get("/health/http")
async def probe_url(
    url: str,
    request: Request,
    probe_type: str = Query("http", alias="type"),
) -> dict[str, Any]:
    """Probe a single URL and return a health result."""
    try:
        kind = HealthType(probe_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid probe type: {probe_type}")

    prober = getattr(request.app.state, "prober", None) or NetworkProber()
    target = urlsplit(url).hostname or url
    health = await probe_health(prober, url, kind, target)
    return {"url": url, **health.to_dict()}

"""Entry point for appwatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from appwatch.apps.models import ApplicationView, HealthStatus
from appwatch.apps.registry import AppRegistry
from appwatch.apps.store import AppStore
from appwatch.config import settings
from appwatch.health.probes import NetworkProber
from appwatch.inventory.cache import FileSnapshotSource, InventoryCache

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    HealthStatus.ONLINE: "bold green",
    HealthStatus.OFFLINE: "bold red",
    HealthStatus.UNKNOWN: "dim",
}


def _registry() -> AppRegistry:
    return AppRegistry(
        store=AppStore(),
        inventory=InventoryCache(FileSnapshotSource()),
        prober=NetworkProber(),
        on_notice=lambda level, msg: console.print(f"[{'red' if level == 'error' else 'green'}]{msg}[/]"),
    )


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting appwatch API Server", style="bold green"))
    uvicorn.run(
        "appwatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def _render(views: list[ApplicationView]) -> Table:
    table = Table(title="Applications")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Host")
    table.add_column("Resolved IP")
    table.add_column("Resource")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Error", overflow="fold")

    for v in views:
        app = v.app
        resource = f"{app.resource_type}:{app.resource_id}" if app.resource_type else "-"
        latency = f"{v.health.latency_ms:.0f} ms" if v.health and v.health.latency_ms is not None else "-"
        table.add_row(
            str(app.id),
            app.name,
            f"{app.host}:{app.port}",
            v.resolved_ip or "-",
            resource,
            f"[{_STATUS_STYLE[v.status]}]{v.status.value}[/]",
            latency,
            (v.health.error or "") if v.health else "",
        )
    return table


async def _check_once() -> list[ApplicationView]:
    registry = _registry()
    views = await registry.load_apps(poll=False)
    return await registry.poller.run_cycle(views)


def run_check() -> None:
    """Load every application, run one poll cycle and print the results."""
    with console.status("[bold green]Probing applications..."):
        views = asyncio.run(_check_once())
    console.print(_render(views))


def run_detect(host: str) -> None:
    """Print the resource a host would be linked to."""
    registry = _registry()
    link = asyncio.run(registry.detect(host))
    if link is None:
        console.print(f"[yellow]No VM / LXC / Docker resource matches {host}[/yellow]")
        sys.exit(1)
    node = f" on node {link.node}" if link.node else ""
    console.print(f"[bold]{host}[/bold] → {link.kind.value} {link.id}{node}")


def main() -> None:
    parser = argparse.ArgumentParser(description="appwatch application registry")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")
    sub.add_parser("check", help="Run one health cycle and print the results")

    detect_parser = sub.add_parser("detect", help="Detect the resource behind a host")
    detect_parser.add_argument("host", help="Hostname or IPv4 address")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        run_check()
    elif args.command == "detect":
        run_detect(args.host)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

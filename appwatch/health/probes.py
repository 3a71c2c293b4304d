"""Probe primitive — one HTTP request or TCP connect against an endpoint.

Returns a ``ProbeResult`` or raises ``ProbeError`` carrying a human-readable
message. Name-resolution failures are reported as ``DNS lookup failed ...``
so callers can tell them apart from refused / timed-out connections.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from appwatch.apps.models import HealthType
from appwatch.config import settings

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """Raised when an endpoint could not be probed."""


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    latency_ms: float
    status_code: int | None = None


class Prober(Protocol):
    async def probe(self, url: str, kind: HealthType | str) -> ProbeResult: ...


def _is_dns_failure(exc: BaseException) -> bool:
    """Walk the exception chain looking for a resolver error."""
    seen = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


class NetworkProber:
    """HTTP probes via httpx, TCP probes via asyncio streams."""

    def __init__(
        self,
        timeout: float | None = None,
        verify_tls: bool | None = None,
        max_ok_status: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.probe_timeout_seconds
        self.verify_tls = verify_tls if verify_tls is not None else settings.probe_verify_tls
        self.max_ok_status = max_ok_status if max_ok_status is not None else settings.probe_max_ok_status
        self._transport = transport  # tests inject httpx.MockTransport

    async def probe(self, url: str, kind: HealthType | str) -> ProbeResult:
        kind = HealthType(kind)
        if kind == HealthType.TCP:
            return await self.probe_tcp(url)
        return await self.probe_http(url)

    async def probe_http(self, url: str) -> ProbeResult:
        """GET ``url``; any response up to ``max_ok_status`` counts as healthy."""
        t0 = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                verify=self.verify_tls,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
        except httpx.TimeoutException:
            raise ProbeError(f"Request to {url} timed out after {self.timeout:g}s")
        except httpx.ConnectError as e:
            host = urlsplit(url).hostname or url
            if _is_dns_failure(e):
                raise ProbeError(f"DNS lookup failed for {host}: {e}") from e
            raise ProbeError(f"Connection error: {e}") from e
        except httpx.HTTPError as e:
            raise ProbeError(f"{type(e).__name__}: {e}") from e

        latency = round((time.perf_counter() - t0) * 1000, 1)
        return ProbeResult(
            ok=resp.status_code <= self.max_ok_status,
            latency_ms=latency,
            status_code=resp.status_code,
        )

    async def probe_tcp(self, url: str) -> ProbeResult:
        """Open (and immediately close) a TCP connection to the URL's host:port."""
        parts = urlsplit(url)
        host = parts.hostname
        try:
            port = parts.port
        except ValueError as e:
            raise ProbeError(f"Invalid port in {url}: {e}") from e
        if not host or port is None:
            raise ProbeError(f"TCP probe needs host and port, got {url}")

        t0 = time.perf_counter()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise ProbeError(f"TCP connect to {host}:{port} timed out after {self.timeout:g}s")
        except socket.gaierror as e:
            raise ProbeError(f"DNS lookup failed for {host}: {e}") from e
        except OSError as e:
            raise ProbeError(f"TCP connect to {host}:{port} failed: {e}") from e

        latency = round((time.perf_counter() - t0) * 1000, 1)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            logger.debug("Ignoring error while closing probe socket to %s:%s", host, port)
        return ProbeResult(ok=True, latency_ms=latency)

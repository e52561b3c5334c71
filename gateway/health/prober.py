"""
Concurrent liveness probing of the registered backends.

Each backend is probed on its dedicated health path first. If that cannot be
reached (connection failure or timeout) the backend root is tried once as a
fallback liveness signal. All backends are probed at the same time, so a slow
backend never delays the report on the others.
"""

import asyncio
import time
from typing import List, Optional

import httpx

from gateway.app_proxy.errors import ForwardErrorKind, classify_transport_error
from gateway.models import HealthCheckResult, HealthStatus
from gateway.observability import GatewayObserver
from gateway.routing import RouteEntry, RouteTable
from gateway.utils import describe_exception, log_exception_with_details
from gateway.vars import HEALTH_PROBE_PATH, HEALTH_PROBE_TIMEOUT

NO_HEALTH_PATH_NOTE = "No /health endpoint, but service responding"


class ProbeFailed(Exception):
    def __init__(self, kind: ForwardErrorKind, cause: BaseException):
        self.kind = kind
        self.cause = cause
        super().__init__(describe_exception(cause))


class HealthProber:
    def __init__(
        self,
        routes: RouteTable,
        observer: Optional[GatewayObserver] = None,
        timeout: float = HEALTH_PROBE_TIMEOUT,
        health_path: str = HEALTH_PROBE_PATH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.routes = routes
        self.observer = observer or GatewayObserver()
        self.timeout = timeout
        self.health_path = health_path
        self._transport = transport

    async def probe_all(self) -> List[HealthCheckResult]:
        """Probe every backend concurrently; results keep registration order."""
        self.observer.logger.debug("[Health] Checking service health...")
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            return list(
                await asyncio.gather(
                    *(self.probe(client, entry) for entry in self.routes.entries)
                )
            )

    async def probe(self, client: httpx.AsyncClient, entry: RouteEntry) -> HealthCheckResult:
        started = time.monotonic()
        with self.observer.span(
            "health_probe", {"probe.service": entry.name, "probe.url": entry.target_base}
        ) as span:
            result = await self._probe(client, entry)
            span.set_attribute("probe.status", result.status.value)
        self.observer.probed(result, time.monotonic() - started)
        return result

    async def _probe(self, client: httpx.AsyncClient, entry: RouteEntry) -> HealthCheckResult:
        try:
            response = await self._get(client, entry.target_base + self.health_path)
        except ProbeFailed as e:
            self.observer.logger.debug(
                f"[Health] {entry.name} health path failed ({e.kind.value}: {e}), trying root"
            )
        else:
            note = None
            if not response.is_success:
                note = f"Health endpoint answered with status {response.status_code}"
            return HealthCheckResult(
                service=entry.name,
                status=HealthStatus.UP,
                url=entry.target_base,
                status_code=response.status_code,
                note=note,
            )

        try:
            response = await self._get(client, entry.target_base + "/")
        except ProbeFailed as e:
            if e.kind == ForwardErrorKind.TIMEOUT:
                return HealthCheckResult(
                    service=entry.name, status=HealthStatus.TIMEOUT, url=entry.target_base
                )
            return HealthCheckResult(
                service=entry.name,
                status=HealthStatus.DOWN,
                url=entry.target_base,
                error=describe_exception(e.cause),
            )
        return HealthCheckResult(
            service=entry.name,
            status=HealthStatus.UP,
            url=entry.target_base,
            status_code=response.status_code,
            note=NO_HEALTH_PATH_NOTE,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        try:
            return await asyncio.wait_for(client.get(url), timeout=self.timeout)
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            raise ProbeFailed(classify_transport_error(e), e) from e
        except Exception as e:
            log_exception_with_details(self.observer.logger, f"[Health] {url}", e)
            raise ProbeFailed(ForwardErrorKind.INTERNAL, e) from e

"""
Structured logging, tracing and metrics for the forwarding and probing paths.

A ``GatewayObserver`` is handed to the forwarder and the health prober instead
of having them print or log on their own, so tests can swap it and production
keeps method/path/origin/status/timing as structured fields.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Tracer
from prometheus_client import Counter, Histogram

UPSTREAM_FAILURES = Counter(
    "gateway_upstream_failures_total",
    "Forwarding attempts that ended in a translated gateway error",
    ["service", "kind"],
)
UPSTREAM_LATENCY = Histogram(
    "gateway_upstream_latency_seconds",
    "Time until the backend answered with a response head",
    ["service"],
)


class GatewayObserver:
    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.logger = logger or logging.getLogger("uvicorn.error")
        self.tracer = tracer or trace.get_tracer("gateway")

    @contextmanager
    def span(self, operation: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
        """Open a span and set the given attributes, skipping empty values."""
        with self.tracer.start_as_current_span(operation) as span:
            for key, value in (attributes or {}).items():
                if value is not None:
                    span.set_attribute(key, value)
            yield span

    def forwarded(
        self,
        service: str,
        method: str,
        path: str,
        target_url: str,
        status: int,
        duration: float,
        origin: Optional[str] = None,
    ) -> None:
        UPSTREAM_LATENCY.labels(service=service).observe(duration)
        self.logger.info(
            f"[Forward] {service} responded {status} for {method} {path}",
            extra={
                "service": service,
                "method": method,
                "path": path,
                "target_url": target_url,
                "origin": origin,
                "status": status,
                "duration_ms": round(duration * 1000, 1),
            },
        )

    def forward_failed(
        self,
        service: str,
        method: str,
        path: str,
        kind: str,
        detail: str,
        duration: float,
        origin: Optional[str] = None,
    ) -> None:
        UPSTREAM_FAILURES.labels(service=service, kind=kind).inc()
        self.logger.error(
            f"[Forward] {service} {kind} for {method} {path}: {detail}",
            extra={
                "service": service,
                "method": method,
                "path": path,
                "origin": origin,
                "error_kind": kind,
                "duration_ms": round(duration * 1000, 1),
            },
        )

    def stream_aborted(self, service: str, method: str, path: str, detail: str) -> None:
        UPSTREAM_FAILURES.labels(service=service, kind="stream_aborted").inc()
        self.logger.warning(
            f"[Forward] {service} stream aborted after response start for {method} {path}: {detail}",
            extra={"service": service, "method": method, "path": path},
        )

    def retrying(self, service: str, method: str, path: str, detail: str) -> None:
        self.logger.warning(
            f"[Forward] Retrying {method} {path} on {service} after: {detail}",
            extra={"service": service, "method": method, "path": path},
        )

    def probed(self, result, duration: float) -> None:
        level = logging.INFO if result.status.value == "UP" else logging.WARNING
        message = f"[Health] {result.service}: {result.status.value} ({result.url})"
        if result.error:
            message += f" error={result.error}"
        if result.note:
            message += f" note={result.note}"
        self.logger.log(
            level,
            message,
            extra={
                "service": result.service,
                "status": result.status.value,
                "status_code": result.status_code,
                "duration_ms": round(duration * 1000, 1),
            },
        )

    def cors_rejected(self, origin: str, method: str, path: str) -> None:
        self.logger.warning(
            f"[CORS] Origin {origin} not allowed for {method} {path}",
            extra={"origin": origin, "method": method, "path": path},
        )

    def cors_permitted_unlisted(self, origin: str, method: str, path: str) -> None:
        self.logger.warning(
            f"[CORS] Permissive mode: allowing unlisted origin {origin} for {method} {path}",
            extra={"origin": origin, "method": method, "path": path},
        )

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse

from gateway.app_proxy.errors import (
    ErrorTranslator,
    ForwardError,
    ForwardErrorKind,
    classify_transport_error,
)
from gateway.observability import GatewayObserver
from gateway.routing import RouteEntry
from gateway.utils import describe_exception, log_exception_with_details
from gateway.vars import FORWARD_RETRY_DELAY, FORWARD_RETRY_ENABLED, FORWARD_TIMEOUT

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Describe the gateway's own address; the client sets them for the backend
DESTINATION_HEADERS = {"host"}

_DROPPED_REQUEST_HEADERS = {h.encode() for h in HOP_BY_HOP_HEADERS | DESTINATION_HEADERS}
_DROPPED_RESPONSE_HEADERS = {h.encode() for h in HOP_BY_HOP_HEADERS}

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS", "PUT", "DELETE"}
RETRYABLE_KINDS = {ForwardErrorKind.CONNECTION_REFUSED, ForwardErrorKind.DNS_FAILURE}


@dataclass(frozen=True)
class ProxyContext:
    """Everything needed to replay one inbound request against its backend."""

    route: RouteEntry
    method: str
    path: str
    target_path: str
    query: str
    headers: httpx.Headers
    body: bytes
    origin: Optional[str] = None

    @property
    def target_url(self) -> str:
        return get_target_url(self.route, self.target_path, self.query)


def get_source_path(route: RouteEntry, path: str, raw_path: Optional[bytes]) -> str:
    """
    The inbound path as sent by the client, with the route prefix in its
    decoded form so the rewrite rule sees what routing matched.
    """
    if not raw_path:
        return path
    raw = raw_path.decode("latin-1")
    if route.matches(raw):
        return raw
    # Prefix was percent-encoded on the wire; keep everything after it raw
    depth = route.prefix.count("/")
    segments = raw.split("/", depth + 1)
    rest = "/" + segments[depth + 1] if len(segments) > depth + 1 else ""
    return route.prefix + rest


def get_target_url(route: RouteEntry, target_path: str, query: str = "") -> str:
    """Join the backend base address with an already rewritten path."""
    url = f"{route.target_base}{target_path}"
    if query:
        url = f"{url}?{query}"
    return url


def prepare_headers(request: Request, route: RouteEntry) -> httpx.Headers:
    """
    Copy inbound headers for the backend, byte for byte.
    Drops hop-by-hop and destination headers and adds X-Forwarded-*.
    """
    headers = httpx.Headers(
        [
            (name, value)
            for name, value in request.headers.raw
            if name.lower() not in _DROPPED_REQUEST_HEADERS
        ]
    )

    client_ip = request.client.host if request.client else "unknown"
    existing_xff = request.headers.get("x-forwarded-for", "")
    headers["x-forwarded-for"] = f"{existing_xff}, {client_ip}".strip(", ")
    headers["x-forwarded-host"] = request.headers.get("host", "")
    headers["x-forwarded-proto"] = request.url.scheme
    headers["x-forwarded-prefix"] = route.prefix
    headers["x-real-ip"] = client_ip
    return headers


def filter_response_headers(headers: httpx.Headers) -> List[Tuple[bytes, bytes]]:
    """Backend response headers minus hop-by-hop ones; repeated headers are kept."""
    return [
        (name, value)
        for name, value in headers.raw
        if name.lower() not in _DROPPED_RESPONSE_HEADERS
    ]


class RequestForwarder:
    """
    Relays one request to the backend of a resolved route and streams the
    answer back unchanged.

    Forwarding is a single attempt unless ``retry_enabled`` is set, in which
    case connection failures on idempotent methods get one more try after
    ``retry_delay`` seconds. Timeouts are never retried.
    """

    def __init__(
        self,
        observer: Optional[GatewayObserver] = None,
        translator: Optional[ErrorTranslator] = None,
        timeout: float = FORWARD_TIMEOUT,
        retry_enabled: bool = FORWARD_RETRY_ENABLED,
        retry_delay: float = FORWARD_RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.observer = observer or GatewayObserver()
        self.translator = translator or ErrorTranslator()
        self.timeout = timeout
        self.retry_enabled = retry_enabled
        self.retry_delay = retry_delay
        self._transport = transport

    async def build_context(self, request: Request, route: RouteEntry) -> ProxyContext:
        # raw_path keeps percent-encoding intact; path is already decoded
        source_path = get_source_path(
            route, request.url.path, request.scope.get("raw_path")
        )
        return ProxyContext(
            route=route,
            method=request.method,
            path=request.url.path,
            target_path=route.rewrite(source_path),
            query=request.scope.get("query_string", b"").decode("latin-1"),
            headers=prepare_headers(request, route),
            body=await request.body(),
            origin=request.headers.get("origin"),
        )

    async def handle(self, request: Request, route: RouteEntry) -> Response:
        """Forward and translate any failure into the stable error body."""
        try:
            return await self.forward(request, route)
        except ForwardError as e:
            return self.translator.to_response(e)

    async def forward(self, request: Request, route: RouteEntry) -> Response:
        ctx = await self.build_context(request, route)
        started = time.monotonic()

        with self.observer.span(
            "proxy_request",
            {
                "proxy.service": route.name,
                "proxy.target_url": ctx.target_url,
                "proxy.method": ctx.method,
                "http.origin": ctx.origin,
            },
        ) as span:
            self.observer.logger.debug(
                f"Proxying {ctx.method} {ctx.path} -> {ctx.target_url}"
            )
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                transport=self._transport,
            )
            try:
                upstream = await self._send_with_retry(client, ctx)
            except ForwardError as e:
                await client.aclose()
                span.set_attribute("proxy.error", e.kind.value)
                self.observer.forward_failed(
                    route.name,
                    ctx.method,
                    ctx.path,
                    e.kind.value,
                    e.detail,
                    time.monotonic() - started,
                    origin=ctx.origin,
                )
                raise

            span.set_attribute("proxy.status_code", upstream.status_code)
            self.observer.forwarded(
                route.name,
                ctx.method,
                ctx.path,
                ctx.target_url,
                upstream.status_code,
                time.monotonic() - started,
                origin=ctx.origin,
            )

        response = StreamingResponse(
            self._relay(upstream, client, ctx),
            status_code=upstream.status_code,
        )
        response.raw_headers = filter_response_headers(upstream.headers)
        return response

    async def _send_with_retry(
        self, client: httpx.AsyncClient, ctx: ProxyContext
    ) -> httpx.Response:
        attempts = 2 if self.retry_enabled and ctx.method in IDEMPOTENT_METHODS else 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._send(client, ctx)
            except ForwardError as e:
                if attempt < attempts and e.kind in RETRYABLE_KINDS:
                    self.observer.retrying(ctx.route.name, ctx.method, ctx.path, e.detail)
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise

    async def _send(self, client: httpx.AsyncClient, ctx: ProxyContext) -> httpx.Response:
        try:
            upstream_request = client.build_request(
                method=ctx.method,
                url=ctx.target_url,
                headers=ctx.headers,
                content=ctx.body or None,
            )
            # Hard deadline for the whole attempt, on top of httpx's per-phase timeouts
            return await asyncio.wait_for(
                client.send(upstream_request, stream=True), timeout=self.timeout
            )
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            raise ForwardError(
                classify_transport_error(e), ctx.route.name, ctx.route.target_base, e
            ) from e
        except Exception as e:
            log_exception_with_details(
                self.observer.logger, f"[Forward] {ctx.route.name}", e
            )
            raise ForwardError(
                ForwardErrorKind.INTERNAL, ctx.route.name, ctx.route.target_base, e
            ) from e

    async def _relay(
        self, upstream: httpx.Response, client: httpx.AsyncClient, ctx: ProxyContext
    ) -> AsyncIterator[bytes]:
        """
        Stream raw backend bytes. Once the response head went out a failure can
        only end the stream early; no error body is appended.
        """
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            self.observer.stream_aborted(
                ctx.route.name, ctx.method, ctx.path, describe_exception(e)
            )
        finally:
            await upstream.aclose()
            await client.aclose()

import logging
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.app_proxy import ErrorTranslator, RequestForwarder
from gateway.cors import CorsMode, CorsPolicy, CorsPolicyMiddleware
from gateway.health import HealthProber
from gateway.observability import GatewayObserver
from gateway.routes import not_found, router
from gateway.routing import RouteTable
from gateway.vars import (
    CORS_ALLOWED_ORIGINS,
    CORS_MODE,
    GATEWAY_BACKENDS,
    LOG_LEVEL,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")
logger.setLevel(LOG_LEVEL)


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streaming responses.
    Relayed backend bodies would otherwise produce one span per chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        trace.get_tracer_provider().add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    # Unknown paths and known paths with an unsupported method share one body
    if exc.status_code in (404, 405):
        return not_found(request)
    return await http_exception_handler(request, exc)


def create_app(
    route_table: Optional[RouteTable] = None,
    cors_policy: Optional[CorsPolicy] = None,
    prober: Optional[HealthProber] = None,
    forwarder: Optional[RequestForwarder] = None,
    observer: Optional[GatewayObserver] = None,
) -> FastAPI:
    """
    Wire the gateway. Anything not passed in is built from the environment
    configuration in ``gateway.vars``.
    """
    observer = observer or GatewayObserver(logger=logger)
    route_table = route_table or RouteTable.from_backends(GATEWAY_BACKENDS)
    cors_policy = cors_policy or CorsPolicy(CORS_ALLOWED_ORIGINS, CorsMode(CORS_MODE))
    translator = ErrorTranslator()

    app = FastAPI(title="Records API Gateway", version="1.0.0")
    app.state.route_table = route_table
    app.state.translator = translator
    app.state.prober = prober or HealthProber(route_table, observer=observer)
    app.state.forwarder = forwarder or RequestForwarder(
        observer=observer, translator=translator
    )

    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_middleware(CorsPolicyMiddleware, policy=cors_policy, observer=observer)
    app.include_router(router)

    logger.info(
        f"[Gateway] CORS mode: {cors_policy.mode.value}, "
        f"{len(cors_policy.allowed_origins)} allow-listed origins"
    )
    return app


configure_tracing()
app = create_app()

instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app)

FastAPIInstrumentor.instrument_app(app, excluded_urls="/metrics")

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from gateway.models import utc_timestamp
from gateway.routing import RouteNotFound
from gateway.vars import GATEWAY_PORT

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Documentation only, served by GET /api
ROUTE_DOCS = {
    "AUTH": "POST /api/auth/login, POST /api/auth/register, GET /api/auth/verify",
    "EHR": "GET /api/ehr/patients, POST /api/ehr/patients, GET /api/ehr/appointments",
    "AI": "POST /api/ai/diagnose, GET /api/ai/analytics, GET /api/ai/insights",
}


def _original_url(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


@router.get("/health")
async def health(request: Request):
    """Gateway status plus a fresh probe of every backend. Always 200."""
    routes = request.app.state.route_table
    results = await request.app.state.prober.probe_all()
    return {
        "status": "API Gateway is running",
        "port": GATEWAY_PORT,
        "services": {entry.name.lower(): entry.target_base for entry in routes.entries},
        "serviceHealth": [r.to_payload() for r in results],
        "timestamp": utc_timestamp(),
    }


@router.get("/api/status")
async def status(request: Request):
    results = await request.app.state.prober.probe_all()
    return {"gateway": "UP", "services": [r.to_payload() for r in results]}


@router.get("/api")
async def directory(request: Request):
    routes = request.app.state.route_table
    return {
        "message": "Records API Gateway",
        "version": request.app.version,
        "status": "UP",
        "endpoints": {
            entry.name.lower(): ROUTE_DOCS.get(entry.name, f"ANY {entry.prefix}/*")
            for entry in routes.entries
        },
        "debug": {"health": "GET /health", "status": "GET /api/status"},
    }


@router.api_route("/api/{path:path}", methods=PROXY_METHODS)
async def proxy(request: Request, path: str) -> Response:
    """Forward to the backend owning the longest matching prefix."""
    route = request.app.state.route_table.resolve(request.url.path, request.method)
    if isinstance(route, RouteNotFound):
        return not_found(request)
    return await request.app.state.forwarder.handle(request, route)


def not_found(request: Request) -> JSONResponse:
    """404 body for any path no route or backend claims."""
    miss = RouteNotFound(path=_original_url(request), method=request.method)
    logger.info(f"[Routes] No route for {miss.method} {miss.path}")
    return request.app.state.translator.not_found_response(miss)

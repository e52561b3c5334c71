import os

from gateway.routing.route_table import validate_base_url

SERVICE_NAME = os.getenv("SERVICE_NAME", "records-gateway")
GATEWAY_PORT = int(os.getenv("GATEWAY_PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

AUTH_SERVICE_URL = os.getenv("AUTH_SERVICE_URL", "http://localhost:3001").rstrip("/")
EHR_SERVICE_URL = os.getenv("EHR_SERVICE_URL", "http://localhost:3002").rstrip("/")
AI_SERVICE_URL = os.getenv("AI_SERVICE_URL", "http://localhost:3003").rstrip("/")

HEALTH_PROBE_TIMEOUT = float(os.getenv("HEALTH_PROBE_TIMEOUT", "3"))
HEALTH_PROBE_PATH = os.getenv("HEALTH_PROBE_PATH", "/health")

FORWARD_TIMEOUT = float(os.getenv("FORWARD_TIMEOUT", "10"))
FORWARD_RETRY_ENABLED = os.getenv("FORWARD_RETRY_ENABLED", "false").lower() == "true"
FORWARD_RETRY_DELAY = float(os.getenv("FORWARD_RETRY_DELAY", "0.2"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

CORS_MODES = ("strict", "permissive")
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:4173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "https://quickehr-gateway.onrender.com",
)


def _parse_cors_mode(raw: str) -> str:
    mode = (raw or "strict").strip().lower()
    if mode not in CORS_MODES:
        raise ValueError(
            f"CORS_MODE must be one of {', '.join(CORS_MODES)}, got {raw!r}"
        )
    return mode


def _parse_origins(raw: str | None) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(o.strip().rstrip("/") for o in raw.split(",") if o.strip())


def _parse_backends(raw: str) -> list[tuple[str, str, str]]:
    """
    Parse ``NAME:/api/prefix=http://host:port`` entries separated by commas.

    Returns (name, prefix, base_url) tuples in declaration order.
    """
    backends: list[tuple[str, str, str]] = []
    if not raw:
        return backends
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        head, sep, url = entry.partition("=")
        name, colon, prefix = head.partition(":")
        if not sep or not colon or not name.strip() or not url.strip():
            raise ValueError(f"Malformed GATEWAY_BACKENDS entry: {entry!r}")
        base = url.strip().rstrip("/")
        try:
            validate_base_url(base)
        except ValueError as e:
            raise ValueError(f"Malformed GATEWAY_BACKENDS entry: {entry!r}: {e}") from e
        backends.append((name.strip().upper(), prefix.strip(), base))
    return backends


CORS_MODE = _parse_cors_mode(os.getenv("CORS_MODE", "strict"))
CORS_ALLOWED_ORIGINS = _parse_origins(os.getenv("CORS_ALLOWED_ORIGINS"))

GATEWAY_BACKENDS = _parse_backends(os.getenv("GATEWAY_BACKENDS", "")) or [
    ("AUTH", "/api/auth", AUTH_SERVICE_URL),
    ("EHR", "/api/ehr", EHR_SERVICE_URL),
    ("AI", "/api/ai", AI_SERVICE_URL),
]

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")
ALLOWED_HEADERS = ("Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization")
PREFLIGHT_MAX_AGE = 600


class CorsMode(str, Enum):
    STRICT = "strict"
    # Allows every origin; unlisted ones are only reported. Must be chosen explicitly.
    PERMISSIVE = "permissive"


@dataclass(frozen=True)
class CorsDecision:
    allowed: bool
    allowed_origin: Optional[str] = None
    listed: bool = True


class CorsPolicy:
    """
    Cross-origin policy as a pure function of the request's Origin header.

    Requests without an Origin (curl, server-to-server) are always allowed and
    nothing is echoed. In strict mode only exact allow-list matches are echoed;
    in permissive mode every origin is echoed and ``listed`` tells whether it
    was on the allow-list.
    """

    def __init__(self, allowed_origins: Iterable[str], mode: CorsMode = CorsMode.STRICT):
        self.allowed_origins = frozenset(allowed_origins)
        self.mode = CorsMode(mode)

    def evaluate(self, origin: Optional[str]) -> CorsDecision:
        if not origin:
            return CorsDecision(allowed=True)
        if origin in self.allowed_origins:
            return CorsDecision(allowed=True, allowed_origin=origin)
        if self.mode == CorsMode.PERMISSIVE:
            return CorsDecision(allowed=True, allowed_origin=origin, listed=False)
        return CorsDecision(allowed=False, listed=False)

    def headers(self, decision: CorsDecision, preflight: bool = False) -> Dict[str, str]:
        headers = {"Vary": "Origin"}
        if decision.allowed and decision.allowed_origin:
            headers["Access-Control-Allow-Origin"] = decision.allowed_origin
            headers["Access-Control-Allow-Credentials"] = "true"
        if preflight and decision.allowed:
            headers["Access-Control-Allow-Methods"] = ", ".join(ALLOWED_METHODS)
            headers["Access-Control-Allow-Headers"] = ", ".join(ALLOWED_HEADERS)
            headers["Access-Control-Max-Age"] = str(PREFLIGHT_MAX_AGE)
        return headers

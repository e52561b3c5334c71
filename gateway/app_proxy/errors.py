"""
Failure taxonomy for forwarded requests and its translation into the stable
client-facing error bodies.

Client bodies only ever contain the fixed fields below. Exception text and
tracebacks stay in the server log.
"""

import asyncio
import socket
from enum import Enum
from typing import Optional, Tuple

import httpx
from fastapi.responses import JSONResponse

from gateway.models import utc_timestamp
from gateway.routing import RouteNotFound
from gateway.utils import describe_exception, find_in_cause_chain

# Fragments resolvers put in the message when a hostname cannot be resolved
_DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
)


class ForwardErrorKind(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    DNS_FAILURE = "dns_failure"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    INTERNAL = "internal_gateway_error"


class ForwardError(Exception):
    """A forwarding attempt that produced no usable backend response."""

    def __init__(
        self,
        kind: ForwardErrorKind,
        service: str,
        target: str,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.service = service
        self.target = target
        self.cause = cause
        super().__init__(f"{service} {kind.value}: {describe_exception(cause)}")

    @property
    def detail(self) -> str:
        return describe_exception(self.cause) if self.cause else self.kind.value


def classify_transport_error(exception: BaseException) -> ForwardErrorKind:
    """Map an exception raised while talking to a backend onto a failure kind."""
    if isinstance(exception, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ForwardErrorKind.TIMEOUT
    if isinstance(exception, (httpx.RemoteProtocolError, httpx.DecodingError)):
        return ForwardErrorKind.MALFORMED_RESPONSE
    if isinstance(exception, httpx.TransportError):
        if find_in_cause_chain(exception, socket.gaierror) is not None:
            return ForwardErrorKind.DNS_FAILURE
        message = describe_exception(exception).lower()
        if any(marker in message for marker in _DNS_ERROR_MARKERS):
            return ForwardErrorKind.DNS_FAILURE
        return ForwardErrorKind.CONNECTION_REFUSED
    return ForwardErrorKind.INTERNAL


class ErrorTranslator:
    """Turns gateway-side failures into (status, body) pairs."""

    def translate(self, error: ForwardError) -> Tuple[int, dict]:
        timestamp = utc_timestamp()
        if error.kind == ForwardErrorKind.TIMEOUT:
            return 503, {
                "error": "Service temporarily unavailable",
                "message": f"{error.service} service did not respond in time",
                "service": error.service,
                "target": error.target,
                "timestamp": timestamp,
            }
        if error.kind == ForwardErrorKind.INTERNAL:
            return 500, {
                "error": "Internal gateway error",
                "message": f"Unexpected error while forwarding to {error.service} service",
                "service": error.service,
                "timestamp": timestamp,
            }
        if error.kind == ForwardErrorKind.MALFORMED_RESPONSE:
            message = f"{error.service} service returned an invalid response"
        else:
            message = f"{error.service} service is unavailable"
        return 502, {
            "error": "Bad Gateway",
            "message": message,
            "service": error.service,
            "target": error.target,
            "timestamp": timestamp,
        }

    def route_not_found(self, miss: RouteNotFound) -> Tuple[int, dict]:
        return 404, {
            "error": "Route not found",
            "message": "The requested endpoint does not exist",
            "path": miss.path,
            "method": miss.method,
            "timestamp": utc_timestamp(),
        }

    def to_response(self, error: ForwardError) -> JSONResponse:
        status_code, body = self.translate(error)
        return JSONResponse(status_code=status_code, content=body)

    def not_found_response(self, miss: RouteNotFound) -> JSONResponse:
        status_code, body = self.route_not_found(miss)
        return JSONResponse(status_code=status_code, content=body)

from .route_table import (
    RouteEntry,
    RouteNotFound,
    RouteTable,
    strip_prefix,
    validate_base_url,
)

__all__ = [
    "RouteEntry",
    "RouteNotFound",
    "RouteTable",
    "strip_prefix",
    "validate_base_url",
]

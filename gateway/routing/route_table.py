"""
Static prefix routing for the gateway.

The table is built once at startup and only read afterwards, so it can be
shared between concurrent requests without locking.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence, Union

import httpx

logger = logging.getLogger("uvicorn.error")

# Paths answered by the gateway itself; no backend may claim them.
RESERVED_PREFIXES = {"/api", "/api/status"}

RewriteRule = Callable[[str], str]


def validate_base_url(url: str) -> str:
    """Return ``url`` if it is an absolute http(s) address, else raise ValueError."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValueError(f"Invalid backend URL {url!r}: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"Backend URL must be an absolute http(s) URL: {url!r}")
    return url


def strip_prefix(prefix: str) -> RewriteRule:
    """Build a rewrite rule that removes ``prefix`` from the start of a path."""

    def _rewrite(path: str) -> str:
        rest = path[len(prefix):] if path.startswith(prefix) else path
        if not rest.startswith("/"):
            rest = "/" + rest
        return rest

    return _rewrite


@dataclass(frozen=True)
class RouteEntry:
    name: str
    prefix: str
    target_base: str
    rewrite: RewriteRule = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        validate_base_url(self.target_base)
        if self.rewrite is None:
            object.__setattr__(self, "rewrite", strip_prefix(self.prefix))

    def matches(self, path: str) -> bool:
        if not path.startswith(self.prefix):
            return False
        # Only match on segment boundaries: /api/auth must not claim /api/authz
        return len(path) == len(self.prefix) or path[len(self.prefix)] == "/"


@dataclass(frozen=True)
class RouteNotFound:
    path: str
    method: str


class RouteTable:
    """Longest-prefix lookup over a fixed set of routes."""

    def __init__(self, entries: Iterable[RouteEntry]):
        entries = tuple(entries)
        seen: set[str] = set()
        for entry in entries:
            _validate_prefix(entry.prefix)
            if entry.prefix in seen:
                raise ValueError(f"Duplicate route prefix: {entry.prefix}")
            seen.add(entry.prefix)
        self._entries = entries
        # Longest prefix first so the first hit is the most specific one
        self._by_length = tuple(
            sorted(entries, key=lambda e: len(e.prefix), reverse=True)
        )

    @classmethod
    def from_backends(
        cls, backends: Sequence[tuple[str, str, str]]
    ) -> "RouteTable":
        table = cls(
            RouteEntry(name=name, prefix=prefix, target_base=base)
            for name, prefix, base in backends
        )
        for entry in table.entries:
            logger.info(
                f"[Routes] {entry.prefix} -> {entry.target_base} ({entry.name})"
            )
        return table

    @property
    def entries(self) -> tuple[RouteEntry, ...]:
        return self._entries

    def resolve(self, path: str, method: str = "GET") -> Union[RouteEntry, RouteNotFound]:
        for entry in self._by_length:
            if entry.matches(path):
                return entry
        return RouteNotFound(path=path, method=method)


def _validate_prefix(prefix: str) -> None:
    if not prefix.startswith("/api/") or prefix.endswith("/"):
        raise ValueError(
            f"Route prefix must look like /api/<name> without a trailing slash: {prefix!r}"
        )
    if prefix in RESERVED_PREFIXES:
        raise ValueError(f"Route prefix {prefix!r} is reserved by the gateway")

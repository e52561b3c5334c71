"""
Helpers for describing and logging exceptions raised by the HTTP client stack.
"""

import logging
from typing import Optional, Type, TypeVar

E = TypeVar("E", bound=BaseException)


def _safe_str(obj) -> str:
    """Convert to string without ever raising."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def find_in_cause_chain(exception: BaseException, target_type: Type[E]) -> Optional[E]:
    """
    Walk ``__cause__``/``__context__`` links and return the first exception of
    ``target_type``. httpx wraps low-level socket errors this way.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = exception
    while current is not None and id(current) not in seen:
        if isinstance(current, target_type):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def describe_exception(exception: Optional[BaseException]) -> str:
    """
    Human-readable, never-empty description of an exception.

    Several httpx errors (notably timeouts) stringify to ``""``; fall back to
    the first non-empty message in the cause chain, then to the type name.
    """
    if exception is None:
        return "None"
    seen: set[int] = set()
    current: Optional[BaseException] = exception
    while current is not None and id(current) not in seen:
        text = _safe_str(current).strip()
        if text:
            return text
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return type(exception).__name__


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """Log an exception with its traceback; logging failures are not propagated."""
    try:
        logger.log(
            level,
            f"{prefix} {type(exception).__name__}: {describe_exception(exception)}",
            exc_info=exception,
        )
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            pass

from .errors import ErrorTranslator, ForwardError, ForwardErrorKind
from .forwarder import ProxyContext, RequestForwarder

__all__ = [
    "ErrorTranslator",
    "ForwardError",
    "ForwardErrorKind",
    "ProxyContext",
    "RequestForwarder",
]

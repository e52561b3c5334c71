from .middleware import CorsPolicyMiddleware
from .policy import CorsDecision, CorsMode, CorsPolicy

__all__ = ["CorsDecision", "CorsMode", "CorsPolicy", "CorsPolicyMiddleware"]

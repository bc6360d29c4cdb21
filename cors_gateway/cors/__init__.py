from .middleware import CorsMiddleware
from .policy import CorsDecision, decide, preflight_headers

__all__ = [
    "CorsDecision",
    "CorsMiddleware",
    "decide",
    "preflight_headers",
]

"""
CORS decision engine.

Computes the CORS headers attached to every gateway response and the extra
headers of a preflight answer. Wildcard origins are never combined with
credentials: with credentials enabled the exact requesting origin is echoed
instead of ``*``.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional

from cors_gateway.config import GatewayConfig

VARY_VALUE = "Origin, Access-Control-Request-Method, Access-Control-Request-Headers"
DEFAULT_ALLOW_METHODS = "GET,POST,PUT,PATCH,DELETE,HEAD,OPTIONS"
DEFAULT_ALLOW_HEADERS = "Content-Type, Authorization, *"

# Headers owned by the gateway; upstream values for these are discarded
MANAGED_HEADERS = (
    "access-control-allow-origin",
    "access-control-allow-credentials",
    "access-control-allow-methods",
    "access-control-allow-headers",
    "access-control-max-age",
)


@dataclass(frozen=True)
class CorsDecision:
    allow_origin: str = ""
    allow_credentials: bool = False

    def headers(self) -> Dict[str, str]:
        headers = {}
        if self.allow_origin:
            headers["Access-Control-Allow-Origin"] = self.allow_origin
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = VARY_VALUE
        return headers


def allowed_origin(origin: Optional[str], config: GatewayConfig) -> str:
    """Value for ``Access-Control-Allow-Origin``; an empty string means omit it."""
    if not origin:
        return "" if config.allow_credentials else "*"
    if config.wildcard_origin:
        return origin if config.allow_credentials else "*"
    return origin if origin in config.allowed_origins else ""


def decide(origin: Optional[str], config: GatewayConfig) -> CorsDecision:
    return CorsDecision(
        allow_origin=allowed_origin(origin, config),
        allow_credentials=config.allow_credentials,
    )


def format_max_age(max_age: Optional[float]) -> Optional[str]:
    if max_age is None or not math.isfinite(max_age) or max_age <= 0:
        return None
    return str(int(max_age)) if max_age == int(max_age) else str(max_age)


def preflight_headers(
    origin: Optional[str],
    request_method: Optional[str],
    request_headers: Optional[str],
    config: GatewayConfig,
) -> Dict[str, str]:
    """Complete header set for a ``204`` answer to an ``OPTIONS`` request."""
    headers = decide(origin, config).headers()
    headers["Access-Control-Allow-Methods"] = request_method or DEFAULT_ALLOW_METHODS
    headers["Access-Control-Allow-Headers"] = request_headers or DEFAULT_ALLOW_HEADERS
    max_age = format_max_age(config.max_age)
    if max_age is not None:
        headers["Access-Control-Max-Age"] = max_age
    return headers

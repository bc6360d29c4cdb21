"""
Gateway configuration.

``GatewayConfig`` is built once before the application starts and shared
read-only by every request handler, the CORS middleware and the WebSocket
relay.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

logger = logging.getLogger("uvicorn.error")

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_AGE = 600.0


def _env_flag(environ: Mapping[str, str], name: str, default: str) -> bool:
    return environ.get(name, default).lower() == "true"


def _parse_origins(raw: str) -> Tuple[str, ...]:
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def _parse_max_age(raw: Optional[str]) -> Optional[float]:
    """Max-age in seconds, or ``None`` when the value is not a finite number."""
    if not raw:
        return DEFAULT_MAX_AGE
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid CORS_MAX_AGE value: {raw!r}")
        return None
    return value if math.isfinite(value) else None


def _parse_timeout(raw: Optional[str]) -> int:
    if not raw:
        return DEFAULT_TIMEOUT_MS
    try:
        value = int(float(raw))
    except ValueError:
        logger.warning(
            f"Invalid PROXY_TIMEOUT_MS value {raw!r}, using {DEFAULT_TIMEOUT_MS}"
        )
        return DEFAULT_TIMEOUT_MS
    return value if value > 0 else DEFAULT_TIMEOUT_MS


@dataclass(frozen=True)
class GatewayConfig:
    """Process-wide, immutable gateway settings."""

    default_target_url: str = ""
    allowed_origins: Tuple[str, ...] = ("*",)
    allow_credentials: bool = False
    max_age: Optional[float] = DEFAULT_MAX_AGE
    allow_target_header: bool = True
    allow_target_query: bool = True
    path_target_mode: bool = True
    strip_prefix: str = ""
    forward_path: bool = True
    verify_tls: bool = True
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def __post_init__(self):
        # A trailing slash on the prefix would leave paths without their leading "/"
        if self.strip_prefix.endswith("/"):
            object.__setattr__(self, "strip_prefix", self.strip_prefix[:-1])

    @property
    def wildcard_origin(self) -> bool:
        return "*" in self.allowed_origins

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """Read the gateway settings from the process environment."""
        env = os.environ if environ is None else environ
        return cls(
            default_target_url=env.get("TARGET_URL") or env.get("DEFAULT_TARGET_URL", ""),
            allowed_origins=_parse_origins(env.get("ALLOWED_ORIGINS", "*")),
            allow_credentials=_env_flag(env, "CORS_ALLOW_CREDENTIALS", "false"),
            max_age=_parse_max_age(env.get("CORS_MAX_AGE")),
            allow_target_header=_env_flag(env, "ALLOW_TARGET_HEADER", "true"),
            allow_target_query=_env_flag(env, "ALLOW_TARGET_QUERY", "true"),
            path_target_mode=_env_flag(env, "PATH_TARGET_MODE", "true"),
            strip_prefix=env.get("STRIP_PREFIX", ""),
            forward_path=_env_flag(env, "FORWARD_PATH", "true"),
            verify_tls=_env_flag(env, "SECURE_PROXY", "true"),
            timeout_ms=_parse_timeout(env.get("PROXY_TIMEOUT_MS")),
        )

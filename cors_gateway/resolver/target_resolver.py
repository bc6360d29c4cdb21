"""
Upstream target resolution.

Every forwarded request carries its destination in one of four places, tried
in this order; the first one that yields a usable URL wins:

1. a full ``http(s)://`` URL embedded in the request path
   (``/https%3A%2F%2Fapi.example.org%2Fping``),
2. the ``x-target-url`` header,
3. the ``url`` query parameter,
4. the configured default target.

Sources 2-4 only provide a *base*; the incoming path and query are joined
onto it. A path-embedded URL is already complete and only gets the incoming
query appended. A candidate that does not parse is skipped in favour of the
next source.
"""

import logging
import re
from typing import Callable, Optional, Tuple
from urllib.parse import SplitResult, unquote, unquote_plus, urlsplit, urlunsplit

from cors_gateway.config import GatewayConfig
from cors_gateway.errors import MalformedTargetError
from cors_gateway.models import IncomingRequest
from cors_gateway.vars import TARGET_HEADER_NAME, TARGET_QUERY_PARAM

logger = logging.getLogger("uvicorn.error")

ALLOWED_SCHEMES = ("http", "https")
_EMBEDDED_TARGET = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s")

TargetSource = Callable[[IncomingRequest, GatewayConfig], Optional[str]]


def parse_target(candidate: str) -> SplitResult:
    """Parse an absolute http(s) URL or raise ``MalformedTargetError``."""
    try:
        parts = urlsplit(candidate.strip())
        # Accessing the port validates it
        parts.port
    except ValueError as e:
        raise MalformedTargetError(candidate, str(e)) from e
    if parts.scheme not in ALLOWED_SCHEMES:
        raise MalformedTargetError(candidate, "unsupported or missing scheme")
    if not parts.hostname or _WHITESPACE.search(parts.netloc):
        raise MalformedTargetError(candidate, "missing or invalid host")
    return parts


def strip_prefix(path: str, prefix: str) -> str:
    if prefix and path.startswith(prefix):
        path = path[len(prefix):]
    return path or "/"


def join_paths(base_path: str, incoming_path: str) -> str:
    """Join two paths with exactly one slash between them."""
    base_path = base_path or "/"
    head = base_path[:-1] if base_path.endswith("/") else base_path
    tail = incoming_path if incoming_path.startswith("/") else f"/{incoming_path}"
    return head + tail


def _query_pairs(query_string: str, drop: Optional[str] = None) -> str:
    """Re-join the non-empty ``name=value`` pairs, optionally dropping one name.

    Pairs are kept byte-for-byte so their percent-encoding reaches the upstream
    unchanged.
    """
    kept = []
    for pair in query_string.split("&"):
        if not pair:
            continue
        if drop is not None and unquote_plus(pair.split("=", 1)[0]) == drop:
            continue
        kept.append(pair)
    return "&".join(kept)


def _query_param(query_string: str, name: str) -> Optional[str]:
    values = [
        unquote_plus(value)
        for key, _, value in (pair.partition("=") for pair in query_string.split("&") if pair)
        if unquote_plus(key) == name
    ]
    # A repeated control parameter is ambiguous and ignored
    return values[0] if len(values) == 1 else None


def _decode_once(text: str) -> str:
    try:
        return unquote(text, errors="strict")
    except UnicodeDecodeError:
        return text


def path_embedded_target(request: IncomingRequest, config: GatewayConfig) -> Optional[str]:
    if not config.path_target_mode:
        return None
    path = strip_prefix(request.path, config.strip_prefix)
    candidate = path[1:] if path.startswith("/") else path
    if not candidate:
        return None
    candidate = _decode_once(candidate)
    if not _EMBEDDED_TARGET.match(candidate):
        return None

    parts = parse_target(candidate)
    query = parts.query
    incoming_query = _query_pairs(request.query_string)
    if incoming_query:
        query = f"{query}&{incoming_query}" if query else incoming_query
    return urlunsplit(parts._replace(path=parts.path or "/", query=query))


def join_with_request(base: str, request: IncomingRequest, config: GatewayConfig) -> str:
    """Combine a target base with the incoming request path and query."""
    parts = parse_target(base)
    if not config.forward_path:
        return urlunsplit(parts._replace(path=parts.path or "/"))

    incoming_path = strip_prefix(request.path, config.strip_prefix)
    query = _query_pairs(request.query_string, drop=TARGET_QUERY_PARAM)
    return urlunsplit(
        parts._replace(
            path=join_paths(parts.path, incoming_path),
            query=query or parts.query,
        )
    )


def header_target(request: IncomingRequest, config: GatewayConfig) -> Optional[str]:
    if not config.allow_target_header:
        return None
    base = request.headers.get(TARGET_HEADER_NAME)
    return join_with_request(base, request, config) if base else None


def query_target(request: IncomingRequest, config: GatewayConfig) -> Optional[str]:
    if not config.allow_target_query:
        return None
    base = _query_param(request.query_string, TARGET_QUERY_PARAM)
    return join_with_request(base, request, config) if base else None


def default_target(request: IncomingRequest, config: GatewayConfig) -> Optional[str]:
    base = config.default_target_url
    return join_with_request(base, request, config) if base else None


TARGET_SOURCES: Tuple[TargetSource, ...] = (
    path_embedded_target,
    header_target,
    query_target,
    default_target,
)


def resolve_target(request: IncomingRequest, config: GatewayConfig) -> Optional[str]:
    """Return the absolute upstream URL for a request, or ``None`` if unresolved."""
    for source in TARGET_SOURCES:
        try:
            target = source(request, config)
        except MalformedTargetError as e:
            logger.debug(f"[Resolver] {source.__name__} skipped: {e}")
            continue
        if target:
            return target
    return None

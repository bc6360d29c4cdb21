from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import quote

from starlette.datastructures import Headers
from starlette.requests import HTTPConnection


@dataclass(frozen=True)
class IncomingRequest:
    """The parts of an inbound HTTP request or WebSocket handshake the gateway reads."""

    method: str
    # Percent-encoded, exactly as received, without the query string
    path: str
    query_string: str = ""
    headers: Headers = field(default_factory=Headers)
    client_host: Optional[str] = None
    secure: bool = False

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        query_string: str = "",
        headers: Optional[Mapping[str, str]] = None,
        client_host: Optional[str] = None,
        secure: bool = False,
    ) -> "IncomingRequest":
        return cls(
            method=method.upper(),
            path=path or "/",
            query_string=query_string,
            headers=Headers(headers=dict(headers or {})),
            client_host=client_host,
            secure=secure,
        )

    @classmethod
    def from_connection(cls, connection: HTTPConnection) -> "IncomingRequest":
        scope = connection.scope
        raw_path = scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1").partition("?")[0]
        else:
            path = quote(scope.get("path") or "/")
        return cls(
            # WebSocket handshakes carry no method in the ASGI scope
            method=scope.get("method", "GET"),
            path=path or "/",
            query_string=scope.get("query_string", b"").decode("latin-1"),
            headers=connection.headers,
            client_host=connection.client.host if connection.client else None,
            secure=connection.url.scheme in ("https", "wss"),
        )

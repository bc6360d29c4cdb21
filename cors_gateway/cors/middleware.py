"""Pure ASGI middleware applying the CORS decision engine to every HTTP response.

Headers are injected on the ``http.response.start`` message only; relayed
bodies stream through unbuffered. WebSocket scopes are not modified.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from cors_gateway.config import GatewayConfig
from cors_gateway.cors.policy import MANAGED_HEADERS, decide, preflight_headers


class CorsMiddleware:
    """Answers preflight requests and decorates every other HTTP response."""

    def __init__(self, app: ASGIApp, config: GatewayConfig):
        self.app = app
        self.config = config

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_headers = Headers(scope=scope)
        origin = request_headers.get("origin")

        if scope["method"] == "OPTIONS":
            # Preflight never reaches target resolution
            response = Response(
                status_code=204,
                headers=preflight_headers(
                    origin,
                    request_headers.get("access-control-request-method"),
                    request_headers.get("access-control-request-headers"),
                    self.config,
                ),
            )
            await response(scope, receive, send)
            return

        cors_headers = decide(origin, self.config).headers()

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name in MANAGED_HEADERS:
                    if name in headers:
                        del headers[name]
                for name, value in cors_headers.items():
                    if name == "Vary":
                        headers.add_vary_header(value)
                    else:
                        headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)

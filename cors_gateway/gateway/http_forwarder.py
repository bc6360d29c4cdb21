import asyncio
import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from cors_gateway.config import GatewayConfig
from cors_gateway.errors import UpstreamError
from cors_gateway.models import IncomingRequest
from cors_gateway.utils import redact_url
from cors_gateway.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from cors_gateway.utils.traced_requests import traced_forward

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Status reported when the client went away before the upstream answered
CLIENT_CLOSED_REQUEST = 499

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def prepare_headers(incoming: IncomingRequest) -> httpx.Headers:
    """
    Prepare headers for forwarding to the upstream.

    Hop-by-hop headers and ``host`` are dropped (the upstream host is taken
    from the target URL), X-Forwarded-* headers describe the original hop.
    Values stay the raw bytes the client sent, so non-ASCII field values
    reach the upstream unchanged.
    """
    headers: List[Tuple[bytes, bytes]] = []
    forwarded_for: List[bytes] = []
    for name, value in incoming.headers.raw:
        name_lower = name.lower()
        key = name_lower.decode("latin-1")
        if key in HOP_BY_HOP_HEADERS or key in ("host", "x-forwarded-host", "x-forwarded-proto"):
            continue
        if key == "x-forwarded-for":
            forwarded_for.append(value)
            continue
        headers.append((name_lower, value))

    host = incoming.headers.get("host", "").encode("latin-1")
    headers.append((b"x-forwarded-host", host))
    headers.append((b"x-forwarded-proto", b"https" if incoming.secure else b"http"))
    forwarded_for.append((incoming.client_host or "").encode("latin-1"))
    headers.append((b"x-forwarded-for", b", ".join(forwarded_for)))

    return httpx.Headers(headers)


def response_headers(upstream: httpx.Response) -> List[Tuple[bytes, bytes]]:
    """Raw upstream headers minus hop-by-hop ones; repeated headers stay separate."""
    return [
        (name.lower(), value)
        for name, value in upstream.headers.raw
        if name.lower().decode("latin-1") not in HOP_BY_HOP_HEADERS
    ]


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _relay_body(upstream: httpx.Response, target_url: str) -> AsyncIterator[bytes]:
    """Yield the upstream body unmodified.

    Errors after the status line went out cannot become a 502 any more; they
    propagate so the server drops the connection.
    """
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        log_exception_with_details(
            logger, f"[HTTP-Forward] Stream from {target_url} aborted:", e
        )
        raise


async def _close_upstream(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    await upstream.aclose()
    await client.aclose()


async def _send_unless_disconnected(
    request: Request, client: httpx.AsyncClient, upstream_request: httpx.Request
) -> Optional[httpx.Response]:
    """Send the upstream request; ``None`` means the client disconnected first."""
    send_task = asyncio.ensure_future(client.send(upstream_request, stream=True))
    disconnect_task = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait(
            {send_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except BaseException:
        send_task.cancel()
        raise
    finally:
        disconnect_task.cancel()
    if send_task.done():
        return send_task.result()
    send_task.cancel()
    return None


async def forward_to_target(
    request: Request, target_url: str, config: GatewayConfig
) -> Response:
    """
    Forward an HTTP request to the resolved upstream URL.

    The request is sent once, with the configured timeout and TLS
    verification, and the upstream response is streamed back with its status,
    headers (minus hop-by-hop ones) and raw body bytes. Failures before the
    upstream answered raise ``UpstreamError``.
    """
    incoming = IncomingRequest.from_connection(request)
    safe_target = redact_url(target_url)

    with traced_forward(tracer, "gateway.forward_http", request.method, target_url) as span:
        headers = prepare_headers(incoming)
        body = await request.body()

        client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            verify=config.verify_tls,
            follow_redirects=False,
        )
        try:
            upstream_request = client.build_request(
                request.method, target_url, headers=headers, content=body
            )
            upstream = await _send_unless_disconnected(request, client, upstream_request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            await client.aclose()
            span.set_attribute("gateway.error", type(e).__name__)
            log_exception_with_details(
                logger, f"[HTTP-Forward] {request.method} {safe_target} failed:", e
            )
            raise UpstreamError(format_exception_message(e)) from e
        except BaseException:
            await client.aclose()
            raise

        if upstream is None:
            await client.aclose()
            span.set_attribute("gateway.error", "client_disconnected")
            logger.info(
                f"[HTTP-Forward] Client left before {safe_target} answered, request aborted"
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        span.set_attribute("gateway.status_code", upstream.status_code)
        response = StreamingResponse(
            _relay_body(upstream, safe_target),
            status_code=upstream.status_code,
            background=BackgroundTask(_close_upstream, upstream, client),
        )
        response.raw_headers = response_headers(upstream)
        return response

"""
Full-duplex WebSocket relay.

The upstream handshake happens first so the client is only accepted once the
upstream accepted too (and with the subprotocol the upstream picked). After
that two pumps copy frames in each direction; whichever side closes first
closes the other.
"""

import asyncio
import logging
import ssl
from typing import List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import websockets
from fastapi import WebSocket
from opentelemetry import trace
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, WebSocketException

from cors_gateway.config import GatewayConfig
from cors_gateway.gateway.http_forwarder import prepare_headers
from cors_gateway.models import IncomingRequest
from cors_gateway.utils import redact_url
from cors_gateway.utils.exception_logging import log_exception_with_details
from cors_gateway.utils.traced_requests import traced_forward

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

NORMAL_CLOSURE = 1000
# Sent to the client when the upstream went away without a close frame
GOING_AWAY = 1001
SENDABLE_CLOSE_CODES = {1000, 1001, 1002, 1003, 1007, 1008, 1009, 1010, 1011, 1012, 1013, 1014}

_WS_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


def to_websocket_url(target_url: str) -> str:
    parts = urlsplit(target_url)
    return urlunsplit(parts._replace(scheme=_WS_SCHEMES.get(parts.scheme, parts.scheme)))


def websocket_headers(incoming: IncomingRequest) -> List[Tuple[str, str]]:
    """
    Forwarded headers minus the handshake headers the client library sets itself.

    websockets writes header text as UTF-8, so values are decoded with the
    charset httpx detects for the raw bytes (UTF-8 when they are valid UTF-8).
    """
    return [
        (name, value)
        for name, value in prepare_headers(incoming).multi_items()
        if not name.startswith("sec-websocket-")
    ]


def _ssl_context(ws_url: str, config: GatewayConfig) -> Optional[ssl.SSLContext]:
    if not ws_url.startswith("wss:") or config.verify_tls:
        return None
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def sendable_close_code(code: Optional[int], default: int) -> int:
    """Close codes 1005/1006 (and other reserved ones) may not be sent on the wire."""
    if code is None:
        return default
    if code in SENDABLE_CLOSE_CODES or 3000 <= code < 5000:
        return code
    return default


async def _client_to_upstream(websocket: WebSocket, upstream) -> Optional[int]:
    """Pump client frames upstream until the client leaves; returns its close code."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return message.get("code")
            if message.get("text") is not None:
                await upstream.send(message["text"])
            elif message.get("bytes") is not None:
                await upstream.send(message["bytes"])
    except ConnectionClosed:
        return upstream.close_code


async def _upstream_to_client(websocket: WebSocket, upstream) -> Optional[int]:
    """Pump upstream frames to the client until the upstream leaves; returns its close code."""
    try:
        async for message in upstream:
            if isinstance(message, str):
                await websocket.send_text(message)
            else:
                await websocket.send_bytes(message)
    except ConnectionClosed:
        pass
    except WebSocketDisconnect as e:
        return e.code
    return upstream.close_code


async def _pump(websocket: WebSocket, upstream) -> None:
    to_upstream = asyncio.ensure_future(_client_to_upstream(websocket, upstream))
    to_client = asyncio.ensure_future(_upstream_to_client(websocket, upstream))
    try:
        done, _ = await asyncio.wait(
            {to_upstream, to_client}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        to_upstream.cancel()
        to_client.cancel()

    code = None
    for task in done:
        try:
            result = task.result()
        except Exception as e:
            log_exception_with_details(logger, "[WS-Relay] Frame pump failed:", e)
            continue
        if code is None:
            code = result
    await upstream.close(code=sendable_close_code(code, NORMAL_CLOSURE))
    if (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    ):
        await websocket.close(code=sendable_close_code(code, GOING_AWAY))


async def relay_websocket(
    websocket: WebSocket, target_url: str, config: GatewayConfig
) -> None:
    """Relay a WebSocket connection to ``target_url`` until either side closes."""
    incoming = IncomingRequest.from_connection(websocket)
    ws_url = to_websocket_url(target_url)
    safe_target = redact_url(ws_url)

    with traced_forward(tracer, "gateway.relay_websocket", "GET", ws_url) as span:
        headers = []
        user_agent = None
        for name, value in websocket_headers(incoming):
            if name == "user-agent":
                user_agent = value
            else:
                headers.append((name, value))
        connect_kwargs = {}
        ssl_context = _ssl_context(ws_url, config)
        if ssl_context is not None:
            connect_kwargs["ssl"] = ssl_context
        try:
            upstream = await websockets.connect(
                ws_url,
                additional_headers=headers,
                user_agent_header=user_agent,
                subprotocols=websocket.scope.get("subprotocols") or None,
                open_timeout=config.timeout_seconds,
                **connect_kwargs,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            span.set_attribute("gateway.error", type(e).__name__)
            log_exception_with_details(
                logger, f"[WS-Relay] Upstream handshake with {safe_target} failed:", e
            )
            # The handshake cannot carry an error body; refuse it
            await websocket.close()
            return

        try:
            await websocket.accept(subprotocol=upstream.subprotocol)
            span.set_attribute("gateway.subprotocol", upstream.subprotocol or "")
            await _pump(websocket, upstream)
        finally:
            await upstream.close()
        span.set_attribute("gateway.close_code", upstream.close_code or 0)
        logger.debug(f"[WS-Relay] Relay with {safe_target} finished")

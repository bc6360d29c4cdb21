import logging

from fastapi import APIRouter, Depends, Request, WebSocket
from fastapi.responses import FileResponse, Response
from starlette.requests import HTTPConnection

from cors_gateway.config import GatewayConfig
from cors_gateway.errors import ConfigurationError
from cors_gateway.gateway.http_forwarder import forward_to_target
from cors_gateway.gateway.static_pages import find_static_file
from cors_gateway.gateway.websocket_relay import relay_websocket
from cors_gateway.models import IncomingRequest
from cors_gateway.resolver import resolve_target
from cors_gateway.vars import TARGET_HEADER_NAME, TARGET_QUERY_PARAM

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def get_gateway_config(connection: HTTPConnection) -> GatewayConfig:
    return connection.app.state.config


def unresolved_message(config: GatewayConfig) -> str:
    """Explain which knobs would have produced a target for this request."""
    options = ["TARGET_URL"]
    disabled = []
    if config.allow_target_header:
        options.append(f"the {TARGET_HEADER_NAME} header")
    else:
        disabled.append("ALLOW_TARGET_HEADER")
    if config.allow_target_query:
        options.append(f"the '{TARGET_QUERY_PARAM}' query parameter")
    else:
        disabled.append("ALLOW_TARGET_QUERY")
    if config.path_target_mode:
        options.append("a full http(s) URL embedded in the path")
    else:
        disabled.append("PATH_TARGET_MODE")

    if len(options) > 1:
        provide = f"{', '.join(options[:-1])} or {options[-1]}"
    else:
        provide = options[0]
    message = f"Target URL is not configured or invalid. Provide {provide}."
    if disabled:
        message += f" Set {', '.join(disabled)}=true to accept per-request targets."
    return message


async def proxy_all(request: Request) -> Response:
    """Catch-all route that forwards every request to its resolved upstream."""
    config = get_gateway_config(request)
    incoming = IncomingRequest.from_connection(request)
    if request.method in ("GET", "HEAD"):
        static_file = find_static_file(request.app.state.static_dir, incoming.path)
        if static_file is not None:
            return FileResponse(static_file)

    target_url = resolve_target(incoming, config)
    if not target_url:
        raise ConfigurationError(unresolved_message(config))
    return await forward_to_target(request, target_url, config)


# No method list: every verb is forwarded, OPTIONS is answered by CorsMiddleware
router.add_route("/{path:path}", proxy_all, include_in_schema=False)


@router.websocket("/{path:path}")
async def relay_all(
    websocket: WebSocket,
    path: str,
    config: GatewayConfig = Depends(get_gateway_config),
) -> None:
    """Catch-all WebSocket route relaying to the resolved upstream."""
    target_url = resolve_target(IncomingRequest.from_connection(websocket), config)
    if not target_url:
        logger.info(f"[WS-Relay] No target for {websocket.url.path}, refusing handshake")
        await websocket.close()
        return
    await relay_websocket(websocket, target_url, config)

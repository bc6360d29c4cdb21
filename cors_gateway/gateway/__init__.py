from .http_forwarder import forward_to_target, prepare_headers
from .route import router
from .websocket_relay import relay_websocket

__all__ = [
    "forward_to_target",
    "prepare_headers",
    "relay_websocket",
    "router",
]

import logging

import uvicorn

from cors_gateway.vars import HOST, LOG_LEVEL, PORT

logger = logging.getLogger("uvicorn.error")

DEFAULT_PORT = 8080


def listen_port(raw: str = PORT) -> int:
    try:
        port = int(raw)
    except ValueError:
        logger.warning(f"Invalid PORT value {raw!r}, using {DEFAULT_PORT}")
        return DEFAULT_PORT
    if not 0 < port < 65536:
        logger.warning(f"PORT {port} out of range, using {DEFAULT_PORT}")
        return DEFAULT_PORT
    return port


def main() -> None:
    uvicorn.run(
        "cors_gateway.server:app",
        host=HOST,
        port=listen_port(),
        log_level=LOG_LEVEL,
        ws="auto",
    )


if __name__ == "__main__":
    main()

import asyncio

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from cors_gateway.server import create_app


class ChunkStream(httpx.AsyncByteStream):
    """Upstream body delivered in fixed chunks, as a streamed httpx response."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.fixture
def upstream_response():
    """Create a streamed httpx Response as returned by ``AsyncClient.send(stream=True)``."""

    def _create_response(status_code=200, headers=None, chunks=(b"",)):
        return httpx.Response(
            status_code, headers=headers or [], stream=ChunkStream(chunks)
        )

    return _create_response


@pytest.fixture
def http_request():
    """Create a real Starlette Request whose receive channel is scripted."""

    def _create_request(
        method="GET",
        path="/",
        query_string="",
        headers=None,
        body=b"",
        disconnect_after_body=False,
        scheme="http",
        client=("203.0.113.7", 50000),
    ):
        raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ]
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method,
            "scheme": scheme,
            "path": path,
            "raw_path": path.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "client": client,
            "server": ("gateway.local", 8080),
        }
        messages = [{"type": "http.request", "body": body, "more_body": False}]

        async def receive():
            if messages:
                return messages.pop(0)
            if disconnect_after_body:
                return {"type": "http.disconnect"}
            # Client stays connected until the test is done with it
            await asyncio.Event().wait()

        return Request(scope, receive)

    return _create_request


@pytest.fixture
def gateway_client():
    """Create a TestClient around a fresh gateway app."""

    def _create_client(config, static_dir="", with_metrics=False):
        app = create_app(
            config,
            static_dir=static_dir,
            with_metrics=with_metrics,
            registry=CollectorRegistry(),
        )
        return TestClient(app)

    return _create_client

import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import CollectorRegistry, Info
from prometheus_fastapi_instrumentator import Instrumentator

from cors_gateway.config import GatewayConfig
from cors_gateway.cors import CorsMiddleware
from cors_gateway.errors import GatewayError
from cors_gateway.gateway import router
from cors_gateway.utils import redact_url
from cors_gateway.vars import (
    HOST,
    METRICS_ENABLED,
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SERVICE_NAME,
    STATIC_DIR,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streaming responses.
    A relayed download would otherwise produce one span per chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type")
                in ("http.response.body", "websocket.send", "websocket.receive")
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> TracerProvider:
    tracer_provider = TracerProvider(
        resource=Resource.create({"service.name": SERVICE_NAME})
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=(OTLP_HEADERS.split(",") if OTLP_HEADERS else None),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
    trace.set_tracer_provider(tracer_provider)
    return tracer_provider


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(
    config: Optional[GatewayConfig] = None,
    *,
    static_dir: str = STATIC_DIR,
    with_metrics: bool = METRICS_ENABLED,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """
    Build the gateway application.

    The configuration is read from the environment unless one is passed in,
    and is then shared read-only through ``app.state.config``.
    """
    config = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"CORS gateway listening on http://{HOST}:{PORT}, default target: "
            f"{redact_url(config.default_target_url) or '(none)'}"
        )
        yield

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.config = config
    app.state.static_dir = static_dir

    app.add_middleware(CorsMiddleware, config=config)
    app.add_exception_handler(GatewayError, gateway_error_handler)

    if with_metrics:
        # Exposed before the catch-all route so it is not forwarded
        instrumentator = (
            Instrumentator(registry=registry) if registry is not None else Instrumentator()
        )
        instrumentator.instrument(app).expose(app, endpoint=METRICS_PATH)

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=METRICS_PATH,
        server_request_hook=None,
        client_request_hook=None,
    )

    app.include_router(router)
    return app


configure_tracing()

# Add app_name to the metrics
app_info = Info("cors_gateway_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app = create_app()

import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from cors_gateway.utils import redact_url

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_forward(
    tracer: Tracer,
    operation: str,
    method: str,
    target_url: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a forwarding span, set common attributes, and log the hop."""
    safe_target = redact_url(target_url)
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("gateway.method", method)
        span.set_attribute("gateway.target_url", safe_target)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.debug(f"[{operation}] {method} -> {safe_target}")
        yield span

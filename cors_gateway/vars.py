import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "cors-gateway")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = os.environ.get("PORT", "8080")
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

METRICS_ENABLED = os.getenv("METRICS_ENABLED", "true").lower() == "true"
METRICS_PATH = os.getenv("METRICS_PATH", "/_gateway/metrics")

# Directory of static pages served ahead of forwarding; empty disables it
STATIC_DIR = os.getenv("STATIC_DIR", "")

# Names of the per-request target controls
TARGET_HEADER_NAME = "x-target-url"
TARGET_QUERY_PARAM = "url"

from typing import Optional


class GatewayError(Exception):
    """Base class for failures that are reported to the caller as JSON."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(GatewayError):
    """No target source produced a usable upstream URL."""

    status_code = 400


class UpstreamError(GatewayError):
    """The resolved upstream could not be reached or answered badly."""

    status_code = 502

    def __init__(self, details: str):
        super().__init__("Bad Gateway: upstream error", details)


class MalformedTargetError(ValueError):
    """A candidate target string is not an absolute http(s) URL."""

    def __init__(self, candidate: str, reason: str):
        super().__init__(f"{reason}: {candidate!r}")
        self.candidate = candidate
        self.reason = reason

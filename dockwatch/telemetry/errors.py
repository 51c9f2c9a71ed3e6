"""
Error types raised by the engine connectivity layer.

Transport errors invalidate the cached endpoint and are retried; API and
protocol errors mean the transport is fine but the request failed.
"""

from typing import Optional


class DockerEngineError(Exception):
    """Base class for all engine connectivity failures."""


class NoEndpointAvailable(DockerEngineError):
    """Raised when every candidate endpoint failed discovery."""

    def __init__(self, attempts: int, tried: Optional[list] = None):
        self.attempts = attempts
        self.tried = tried or []
        candidates = ", ".join(self.tried) if self.tried else "none"
        super().__init__(
            f"No Docker engine endpoint available after {attempts} discovery "
            f"attempts (tried: {candidates})"
        )


class EngineTransportError(DockerEngineError):
    """Raised when the request retry budget is exhausted on connection-level failures."""

    def __init__(self, path: str, attempts: int, original: Exception):
        self.path = path
        self.attempts = attempts
        self.original = original
        super().__init__(
            f"Request to {path} failed after {attempts} attempts: "
            f"{type(original).__name__}: {original}"
        )


class EngineAPIError(DockerEngineError):
    """Raised when the engine answers with a non-2xx status."""

    def __init__(self, status_code: int, path: str, body: str = ""):
        self.status_code = status_code
        self.path = path
        self.body = body
        message = f"HTTP {status_code} from {path}"
        if body:
            message += f": {body[:200]}"
        super().__init__(message)


class EngineProtocolError(DockerEngineError):
    """Raised when a response body cannot be parsed into the expected schema."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed response from {path}: {reason}")

"""Gateway exception hierarchy.

Only ``GatewayHTTPError`` is response-shaped (the endpoint answered with an
error status) and therefore eligible for protocol fallback.  Connection
failures and timeouts are ``GatewayConnectionError`` and propagate as-is.
"""

from __future__ import annotations


class GatewayError(RuntimeError):
    """Base class for LLM backend failures."""


class GatewayConfigError(GatewayError):
    """Backend cannot be called: missing API key, unsupported backend, ..."""


class GatewayConnectionError(GatewayError):
    """Network-level failure (DNS, refused connection, timeout)."""


class GatewayHTTPError(GatewayError):
    """The endpoint returned an error status."""

    def __init__(self, status_code: int, body: str = "", url: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Request failed with status code {status_code}: {body[:200]}")

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401

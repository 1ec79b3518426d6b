"""Errors raised while proxying a request.

Every error maps onto a plain-text HTTP response; the dispatcher converts
them locally so nothing reaches the client as an unhandled 500.
"""

from typing import Optional

from fastapi.responses import Response

PLAIN_TEXT = "text/plain;charset=UTF-8"


class ProxyError(Exception):
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self, message: Optional[str] = None) -> Response:
        return Response(
            content=message if message is not None else self.message,
            status_code=self.status_code,
            media_type=PLAIN_TEXT,
            headers={"Access-Control-Allow-Origin": "*"},
        )


class InvalidTarget(ProxyError):
    """The target URL could not be parsed."""

    status_code = 502


class ForbiddenHost(ProxyError):
    """The target or redirect host is not on the allow-list."""

    status_code = 403

    def __init__(self, host: str, message: str):
        super().__init__(message)
        self.host = host


class UpstreamFailure(ProxyError):
    """The upstream fetch failed at the transport level."""

    status_code = 502

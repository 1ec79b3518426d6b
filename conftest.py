from typing import List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest
from fastapi import Request

from rewrite_proxy.proxy.context import ProxyRequestContext
from rewrite_proxy.proxy.settings import build_settings

PROXY_HOST = "proxy.example.com"
PROXY_ORIGIN = f"https://{PROXY_HOST}"

TEST_ALLOWED_DOMAINS = [
    "store.steampowered.com",
    "cdn.tailwindcss.com",
    "m.bsddji.cn",
]

TEST_ROUTES = {
    "/steam": "https://store.steampowered.com",
    "/tailwindcss": "https://cdn.tailwindcss.com/",
    "/vpn": "https://m.bsddji.cn/ssone/0f6daf12",
    "/mediafire": "https://mediafire.com",
}


@pytest.fixture
def proxy_settings():
    return build_settings(TEST_ALLOWED_DOMAINS, TEST_ROUTES)


@pytest.fixture
def make_request():
    """Build a real Starlette request from an ASGI scope."""

    def _make_request(
        path: str,
        method: str = "GET",
        query: str = "",
        headers: Optional[List[Tuple[str, str]]] = None,
        body: bytes = b"",
        client: Optional[Tuple[str, int]] = ("203.0.113.7", 52000),
    ) -> Request:
        raw_headers = [(b"host", PROXY_HOST.encode())]
        for name, value in headers or []:
            raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": "https",
            "path": unquote(path),
            "raw_path": path.encode("latin-1"),
            "root_path": "",
            "query_string": query.encode("latin-1"),
            "headers": raw_headers,
            "server": (PROXY_HOST, 443),
            "client": client,
        }

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)

    return _make_request


@pytest.fixture
def make_context():
    """Build a ProxyRequestContext that already points at a target."""

    def _make_context(
        target: str = "https://store.steampowered.com/app/10/",
        matched_prefix: Optional[str] = "/steam",
        headers: Optional[List[Tuple[str, str]]] = None,
        method: str = "GET",
        is_generic: bool = False,
        client_ip: str = "203.0.113.7",
    ) -> ProxyRequestContext:
        return ProxyRequestContext(
            method=method,
            path=f"{matched_prefix or '/proxy'}/app/10/",
            query="",
            headers=list(headers or []),
            client_ip=client_ip,
            proxy_scheme="https",
            proxy_host=PROXY_HOST,
            matched_prefix=None if is_generic else matched_prefix,
            target_url=httpx.URL(target),
            is_generic=is_generic,
        )

    return _make_context


@pytest.fixture
def upstream():
    """
    Stand-in for upstream servers. Set ``upstream.responder`` to a callable
    taking the httpx.Request; every request seen is kept in ``upstream.calls``.
    """

    class _Upstream:
        def __init__(self):
            self.calls: List[httpx.Request] = []
            self.responder = lambda request: httpx.Response(200, text="ok")

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.calls.append(request)
            return self.responder(request)

        @property
        def transport(self) -> httpx.MockTransport:
            return httpx.MockTransport(self.handler)

    return _Upstream()

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx
from fastapi import Request

from rewrite_proxy.proxy.settings import ProxySettings
from rewrite_proxy.proxy.urls import url_directory, url_host, url_origin, url_path


@dataclass
class ProxyRequestContext:
    """Per-request state threaded through the proxy pipeline."""

    method: str
    path: str
    query: str
    headers: List[Tuple[str, str]]
    client_ip: str
    proxy_scheme: str
    proxy_host: str
    matched_prefix: Optional[str] = None
    target_url: Optional[httpx.URL] = None
    is_generic: bool = field(default=False)

    @classmethod
    def from_request(
        cls, request: Request, settings: ProxySettings
    ) -> "ProxyRequestContext":
        raw_path = request.scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1").split("?", 1)[0]
        else:
            path = request.url.path

        if settings.public_url:
            public = httpx.URL(settings.public_url)
            scheme, host = public.scheme, url_host(public)
        else:
            scheme, host = request.url.scheme, request.url.netloc

        if request.client and request.client.host:
            client_ip = request.client.host
        else:
            client_ip = request.headers.get(settings.client_ip_header, "")

        return cls(
            method=request.method,
            path=path,
            query=request.url.query,
            headers=list(request.headers.items()),
            client_ip=client_ip,
            proxy_scheme=scheme,
            proxy_host=host,
        )

    @property
    def proxy_origin(self) -> str:
        return f"{self.proxy_scheme}://{self.proxy_host}"

    @property
    def proxy_base(self) -> str:
        """Proxy origin plus the matched route prefix."""
        return f"{self.proxy_origin}{self.matched_prefix or ''}"

    @property
    def target_host(self) -> str:
        return url_host(self.target_url)

    @property
    def target_origin(self) -> str:
        return url_origin(self.target_url)

    @property
    def target_path(self) -> str:
        return url_path(self.target_url)

    @property
    def target_directory(self) -> str:
        return url_directory(self.target_url)

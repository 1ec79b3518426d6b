import logging
from typing import Optional

import httpx

from rewrite_proxy.proxy.context import ProxyRequestContext
from rewrite_proxy.proxy.urls import url_origin

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def rewrite_referer(referer: Optional[str], target_url: httpx.URL) -> Optional[str]:
    """
    Point the Referer at the target origin, keeping its path and query.

    Returns None when the inbound Referer cannot be parsed, in which case
    the caller leaves the header alone.
    """
    origin = url_origin(target_url)
    if not referer:
        return f"{origin}/"
    try:
        ref_url = httpx.URL(referer)
    except httpx.InvalidURL:
        return None
    if not ref_url.is_absolute_url:
        return None
    return f"{origin}{ref_url.raw_path.decode('ascii')}"


def prepare_headers(ctx: ProxyRequestContext) -> httpx.Headers:
    """
    Prepare headers for forwarding to the target.
    Removes hop-by-hop headers, sets the X-Forwarded-* family and disables
    compression so the body can be rewritten as text.
    """
    # Inbound values are latin-1 decoded by Starlette; re-encode them the same way
    headers = httpx.Headers(
        [
            (name, value)
            for name, value in ctx.headers
            if name.lower() not in HOP_BY_HOP_HEADERS
        ],
        encoding="latin-1",
    )

    headers["host"] = ctx.target_host
    headers["x-forwarded-for"] = ctx.client_ip
    headers["x-forwarded-host"] = ctx.proxy_host
    headers["x-forwarded-proto"] = ctx.proxy_scheme
    headers.pop("accept-encoding", None)

    referer = rewrite_referer(headers.get("referer"), ctx.target_url)
    if referer is not None:
        headers["referer"] = referer
    else:
        logger.debug(f"Leaving unparseable Referer untouched: {headers.get('referer')}")

    return headers


def build_upstream_request(ctx: ProxyRequestContext, body: bytes) -> httpx.Request:
    """
    Build the outbound request. It is sent with ``client.send`` so the
    client's default headers (Accept-Encoding among them) are not merged in.
    """
    return httpx.Request(
        method=ctx.method,
        url=ctx.target_url,
        headers=prepare_headers(ctx),
        content=body,
    )

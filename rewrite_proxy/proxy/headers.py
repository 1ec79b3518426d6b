import httpx
from fastapi.responses import Response

from rewrite_proxy.proxy.rewriter import ContentClass
from rewrite_proxy.proxy.upstream import HOP_BY_HOP_HEADERS

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, PATCH, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept, Origin, Range",
}

PREFLIGHT_HEADERS = {
    **CORS_HEADERS,
    "Access-Control-Max-Age": "86400",
    "Cache-Control": "public, max-age=86400",
}

# Stripped so rewritten pages render and frame under the proxy origin
SECURITY_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "x-frame-options",
    "x-content-type-options",
)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
CACHEABLE_HEADERS = {"Cache-Control": "public, max-age=86400"}


def preflight_response() -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


def upstream_headers(headers: httpx.Headers, body_changed: bool) -> httpx.Headers:
    """
    Copy upstream response headers, dropping hop-by-hop headers.
    When the body was decoded or rewritten its length and encoding no longer apply.
    """
    dropped = set(HOP_BY_HOP_HEADERS)
    if body_changed:
        dropped.update({"content-length", "content-encoding"})
    # Raw byte pairs, so non-ASCII values such as UTF-8 filenames pass unchanged
    return httpx.Headers(
        [
            (name, value)
            for name, value in headers.raw
            if name.decode("latin-1").lower() not in dropped
        ],
        encoding="latin-1",
    )


def normalize_headers(headers: httpx.Headers) -> httpx.Headers:
    for name, value in CORS_HEADERS.items():
        headers[name] = value
    for name in SECURITY_HEADERS:
        headers.pop(name, None)
    return headers


def apply_cache_policy(headers: httpx.Headers, content_class: ContentClass) -> httpx.Headers:
    policy = NO_STORE_HEADERS if content_class is ContentClass.HTML else CACHEABLE_HEADERS
    for name, value in policy.items():
        headers[name] = value
    return headers


def copy_to_response(headers: httpx.Headers, response: Response) -> Response:
    """Append headers one by one so multi-valued ones like Set-Cookie survive."""
    for name, value in headers.raw:
        response.raw_headers.append((name.lower(), value))
    return response

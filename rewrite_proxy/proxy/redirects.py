from urllib.parse import quote

import httpx

from rewrite_proxy.proxy.context import ProxyRequestContext
from rewrite_proxy.proxy.errors import ForbiddenHost, InvalidTarget
from rewrite_proxy.proxy.settings import ProxySettings
from rewrite_proxy.proxy.urls import url_host

# Characters encodeURIComponent leaves alone besides the ones quote() always keeps
_URI_COMPONENT_SAFE = "!*'()"


def location_text(headers: httpx.Headers) -> str:
    """Location header text, read as UTF-8 where the upstream sent it that way."""
    for name, value in headers.raw:
        if name.lower() == b"location":
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value.decode("latin-1")
    return ""


def is_redirect(status_code: int, headers: httpx.Headers) -> bool:
    return 300 <= status_code < 400 and "location" in headers


def proxied_location(
    resolved: httpx.URL, ctx: ProxyRequestContext, settings: ProxySettings
) -> str:
    if ctx.is_generic:
        encoded = quote(str(resolved), safe=_URI_COMPONENT_SAFE)
        return f"{ctx.proxy_origin}{settings.generic_prefix}{encoded}"
    return f"{ctx.proxy_base}{resolved.raw_path.decode('ascii')}"


def validate_redirect(
    status_code: int,
    headers: httpx.Headers,
    ctx: ProxyRequestContext,
    settings: ProxySettings,
) -> httpx.Headers:
    """
    Rewrite the Location of a redirect so it points back through the proxy.

    Raises ForbiddenHost when the redirect leaves the allow-list; the
    redirect itself is then never shown to the client.
    """
    if not is_redirect(status_code, headers):
        return headers

    location = location_text(headers)
    try:
        resolved = ctx.target_url.join(location)
    except httpx.InvalidURL as e:
        raise InvalidTarget(f"Invalid redirect location {location!r}: {e}") from e

    host = url_host(resolved)
    # Generic and prefix routes share this refusal message
    if not settings.allow_list.is_allowed(host):
        raise ForbiddenHost(host, f"重定向目标域名 {host} 不在允许列表内")

    headers["location"] = proxied_location(resolved, ctx, settings)
    return headers

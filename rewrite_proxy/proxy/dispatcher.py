import logging
from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from opentelemetry.trace import Span
from starlette.background import BackgroundTask

from rewrite_proxy.proxy.context import ProxyRequestContext
from rewrite_proxy.proxy.errors import (
    ForbiddenHost,
    InvalidTarget,
    ProxyError,
    UpstreamFailure,
)
from rewrite_proxy.proxy.headers import (
    apply_cache_policy,
    copy_to_response,
    normalize_headers,
    preflight_response,
    upstream_headers,
)
from rewrite_proxy.proxy.redirects import validate_redirect
from rewrite_proxy.proxy.rewriter import ContentClass, classify, rewrite_body
from rewrite_proxy.proxy.routing import NoMatch, PrefixMatch, resolve
from rewrite_proxy.proxy.settings import ProxySettings
from rewrite_proxy.proxy.upstream import build_upstream_request
from rewrite_proxy.proxy.urls import url_for_log
from rewrite_proxy.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

NO_BODY_STATUSES = {204, 304}


async def _close_upstream(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    await upstream.aclose()
    await client.aclose()


def _error_response(ctx: ProxyRequestContext, error: ProxyError) -> Response:
    if isinstance(error, ForbiddenHost):
        return error.to_response()
    if ctx.is_generic:
        return error.to_response(f"代理请求失败: {error.message}")
    return error.to_response("代理请求失败")


def _forbidden_target(ctx: ProxyRequestContext) -> ForbiddenHost:
    host = ctx.target_host
    if ctx.is_generic:
        return ForbiddenHost(host, f"禁止代理该域名：{host}")
    return ForbiddenHost(host, f"目标域名 {host} 不在允许列表内")


async def _send(
    client: httpx.AsyncClient, upstream_request: httpx.Request
) -> httpx.Response:
    try:
        return await client.send(upstream_request, stream=True)
    except httpx.TimeoutException as e:
        await client.aclose()
        logger.error(f"Proxy timeout for {url_for_log(upstream_request.url)}: {e}")
        raise UpstreamFailure(str(e) or "timeout") from e
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error(
            f"Proxy error for {url_for_log(upstream_request.url)}: {e}", exc_info=True
        )
        raise UpstreamFailure(str(e) or type(e).__name__) from e


async def forward(
    request: Request,
    ctx: ProxyRequestContext,
    settings: ProxySettings,
    span: Span,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Response:
    """
    Issue the single upstream request and turn its answer into our response.

    Rewritable bodies are buffered and rewritten; everything else is streamed
    through and the upstream connection is closed once the body is sent.
    """
    body = await request.body()
    upstream_request = build_upstream_request(ctx, body)

    client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(settings.proxy_timeout),
        follow_redirects=False,  # Redirects are validated and rewritten here
    )
    upstream = await _send(client, upstream_request)

    streaming = False
    try:
        status_code = upstream.status_code
        span.set_attribute("proxy.status_code", status_code)

        content_class = classify(upstream.headers.get("content-type", ""))
        span.set_attribute("proxy.content_class", content_class.value)
        needs_rewrite = (
            not ctx.is_generic
            and content_class is not ContentClass.OPAQUE
            and ctx.method != "HEAD"
            and status_code not in NO_BODY_STATUSES
        )

        content = None
        if needs_rewrite:
            try:
                await upstream.aread()
            except httpx.HTTPError as e:
                logger.error(f"Failed reading body from {url_for_log(ctx.target_url)}: {e}")
                raise UpstreamFailure(str(e) or type(e).__name__) from e
            encoding = upstream.encoding or "utf-8"
            text = rewrite_body(
                upstream.text,
                content_class,
                ctx,
                settings.extra_rules.get(ctx.target_host, ()),
            )
            content = text.encode(encoding, errors="replace")

        # Streamed bodies are decoded by httpx, so a Content-Encoding no longer holds
        body_changed = needs_rewrite or "content-encoding" in upstream.headers
        headers = normalize_headers(upstream_headers(upstream.headers, body_changed))
        if not ctx.is_generic:
            apply_cache_policy(headers, content_class)
        validate_redirect(status_code, headers, ctx, settings)
        if "location" in headers:
            span.set_attribute("proxy.rewritten_location", headers["location"])

        if content is not None:
            response = Response(content=content, status_code=status_code)
        else:
            response = StreamingResponse(
                upstream.aiter_bytes(),
                status_code=status_code,
                background=BackgroundTask(_close_upstream, upstream, client),
            )
            streaming = True
        return copy_to_response(headers, response)
    finally:
        if not streaming:
            await _close_upstream(upstream, client)


async def dispatch(
    request: Request,
    settings: ProxySettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Response]:
    """
    Handle one inbound request.

    Returns None when no route matches so the web layer can fall back to
    static content.
    """
    if request.method == "OPTIONS":
        return preflight_response()

    ctx = ProxyRequestContext.from_request(request, settings)
    ctx.is_generic = ctx.path.startswith(settings.generic_prefix)

    try:
        outcome = resolve(ctx.path, ctx.query, settings)
    except InvalidTarget as e:
        logger.warning(f"Invalid proxy target in {ctx.path}: {e}")
        return _error_response(ctx, e)

    if isinstance(outcome, NoMatch):
        return None

    ctx.target_url = outcome.target_url
    if isinstance(outcome, PrefixMatch):
        ctx.matched_prefix = outcome.matched_prefix

    if not settings.allow_list.is_allowed(ctx.target_host):
        logger.warning(f"Refusing to proxy {ctx.path} to {ctx.target_host}")
        return _forbidden_target(ctx).to_response()

    with traced_request(
        tracer,
        operation="proxy_request",
        route="generic" if ctx.is_generic else "prefix",
        method=ctx.method,
        target_url=url_for_log(ctx.target_url),
        start_message=f'Proxying "{ctx.path}" to "{url_for_log(ctx.target_url)}"',
        extra_attrs={"proxy.prefix": ctx.matched_prefix or ""},
    ) as span:
        try:
            return await forward(request, ctx, settings, span, transport)
        except ProxyError as e:
            span.set_attribute("proxy.error", type(e).__name__)
            if isinstance(e, ForbiddenHost):
                logger.warning(
                    f"Blocked redirect from {url_for_log(ctx.target_url)} to {e.host}"
                )
            return _error_response(ctx, e)

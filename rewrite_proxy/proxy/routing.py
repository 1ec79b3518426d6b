"""Maps an inbound path onto an upstream target URL."""

from dataclasses import dataclass
from typing import Union
from urllib.parse import unquote

import httpx

from rewrite_proxy.proxy.errors import InvalidTarget
from rewrite_proxy.proxy.settings import ProxySettings
from rewrite_proxy.proxy.urls import parse_absolute_url

ENCODED_SCHEMES = ("http%3A%2F%2F", "https%3A%2F%2F")


@dataclass(frozen=True)
class GenericProxy:
    target_url: httpx.URL


@dataclass(frozen=True)
class PrefixMatch:
    base_origin: str
    matched_prefix: str
    remainder: str
    target_url: httpx.URL


@dataclass(frozen=True)
class NoMatch:
    pass


RouteOutcome = Union[GenericProxy, PrefixMatch, NoMatch]


def resolve_generic_target(raw_target: str, query: str) -> httpx.URL:
    """
    Turn the part of the path after the escape prefix into a target URL.

    The inbound query string is only applied when the extracted target
    carries none of its own.
    """
    target_string = raw_target
    if target_string.startswith(ENCODED_SCHEMES):
        target_string = unquote(target_string)
    if not target_string.startswith(("http://", "https://")):
        target_string = "https://" + target_string

    if query and "?" not in target_string:
        target_string = f"{target_string}?{query}"

    try:
        return parse_absolute_url(target_string)
    except httpx.InvalidURL as e:
        raise InvalidTarget(str(e)) from e


def resolve_prefix_target(base_origin: str, remainder: str, query: str) -> httpx.URL:
    """
    Append the unmatched remainder of the path to the route's base origin.

    The inbound query string always replaces whatever query the computed
    target had.
    """
    base = base_origin[:-1] if base_origin.endswith("/") else base_origin
    target_string = (base + remainder).split("?", 1)[0]
    if query:
        target_string = f"{target_string}?{query}"

    try:
        return parse_absolute_url(target_string)
    except httpx.InvalidURL as e:
        raise InvalidTarget(str(e)) from e


def resolve(path: str, query: str, settings: ProxySettings) -> RouteOutcome:
    if path.startswith(settings.generic_prefix):
        raw_target = path[len(settings.generic_prefix):]
        return GenericProxy(resolve_generic_target(raw_target, query))

    matched = settings.routes.match(path)
    if matched is None:
        return NoMatch()

    prefix, base_origin = matched
    remainder = path[len(prefix):]
    return PrefixMatch(
        base_origin=base_origin,
        matched_prefix=prefix,
        remainder=remainder,
        target_url=resolve_prefix_target(base_origin, remainder, query),
    )

import httpx


def url_host(url: httpx.URL) -> str:
    """Hostname plus any non-default port, e.g. ``example.com:8443``."""
    return url.netloc.decode("ascii")


def url_origin(url: httpx.URL) -> str:
    return f"{url.scheme}://{url_host(url)}"


def url_path(url: httpx.URL) -> str:
    """Percent-encoded path without the query string."""
    return url.raw_path.decode("ascii").split("?", 1)[0]


def url_directory(url: httpx.URL) -> str:
    """The path up to and including its last ``/``."""
    path = url_path(url)
    return path[: path.rfind("/") + 1]


def parse_absolute_url(raw: str) -> httpx.URL:
    """Parse an absolute http(s) URL, raising ``httpx.InvalidURL`` otherwise."""
    url = httpx.URL(raw)
    if url.scheme not in ("http", "https") or not url.host:
        raise httpx.InvalidURL(f"Invalid URL: {raw!r}")
    return url


def url_for_log(url: httpx.URL) -> str:
    """Origin and path only; query strings may carry credentials."""
    return f"{url_origin(url)}{url_path(url)}"

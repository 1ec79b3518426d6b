import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "rewrite-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

DEFAULT_ALLOWED_DOMAINS = [
    "store.steampowered.com",
    "api.steamcmd.net",
    "cdn.tailwindcss.com",
    "m.bsddji.cn",
    "download2342.mediafire.com",
    "steam.ddxnb.cn",
]

DEFAULT_PROXY_ROUTES = {
    "/steam": "https://store.steampowered.com",
    "/steamcmd": "https://api.steamcmd.net",
    "/tailwindcss": "https://cdn.tailwindcss.com",
    "/mediafire": "https://mediafire.com",
    "/vpn": "https://m.bsddji.cn/ssone/0f6daf12a8d5af2552055bb8a01dd9e8",
    "/steamd": "https://steam.ddxnb.cn",
}


def _parse_route_map(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            prefix, origin = entry.split("=", 1)
            prefix = prefix.strip()
            origin = origin.strip()
            if prefix and origin:
                mapping[prefix] = origin
    return mapping


ALLOWED_DOMAINS = [
    d.strip() for d in os.getenv("ALLOWED_DOMAINS", "").split(",") if d.strip()
] or list(DEFAULT_ALLOWED_DOMAINS)
PROXY_ROUTES = _parse_route_map(os.getenv("PROXY_ROUTES", "")) or dict(
    DEFAULT_PROXY_ROUTES
)

GENERIC_PROXY_PREFIX = os.getenv("GENERIC_PROXY_PREFIX", "/proxy/")
# Public-facing origin used in rewrites, e.g. https://proxy.example.com
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")
CLIENT_IP_HEADER = os.environ.get("CLIENT_IP_HEADER", "x-nf-client-connection-ip")
PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "300"))
STATIC_DIR = os.environ.get("STATIC_DIR", "")

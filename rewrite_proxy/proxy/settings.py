"""Static proxy configuration.

The allow-list and route table are loaded once at startup into an immutable
``ProxySettings`` which is handed to the dispatcher explicitly.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from rewrite_proxy import vars as proxy_vars
from rewrite_proxy.proxy.rewriter import RewriteRule


@dataclass(frozen=True)
class AllowList:
    hosts: frozenset = frozenset()

    @classmethod
    def of(cls, hosts: Iterable[str]) -> "AllowList":
        return cls(frozenset(hosts))

    def is_allowed(self, host: str) -> bool:
        return host in self.hosts


@dataclass(frozen=True)
class RouteTable:
    routes: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "RouteTable":
        return cls(tuple(mapping.items()))

    def match(self, path: str) -> Optional[Tuple[str, str]]:
        """Return ``(prefix, base_origin)`` for the longest prefix matching ``path``."""
        best = None
        for prefix, origin in self.routes:
            if path != prefix and not path.startswith(prefix + "/"):
                continue
            if best is None or len(prefix) > len(best[0]):
                best = (prefix, origin)
        return best


@dataclass(frozen=True)
class ProxySettings:
    allow_list: AllowList
    routes: RouteTable
    # Extra HTML rewrite rules keyed by target host
    extra_rules: Mapping[str, Tuple[RewriteRule, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    generic_prefix: str = "/proxy/"
    public_url: str = ""
    client_ip_header: str = "x-nf-client-connection-ip"
    proxy_timeout: float = 300
    static_dir: str = ""


def build_settings(
    allowed_domains: Iterable[str],
    routes: Mapping[str, str],
    extra_rules: Optional[Dict[str, Iterable[RewriteRule]]] = None,
    **options,
) -> ProxySettings:
    frozen_rules = MappingProxyType(
        {host: tuple(rules) for host, rules in (extra_rules or {}).items()}
    )
    return ProxySettings(
        allow_list=AllowList.of(allowed_domains),
        routes=RouteTable.from_mapping(routes),
        extra_rules=frozen_rules,
        **options,
    )


def load_settings() -> ProxySettings:
    """Build settings from the environment-derived values in ``rewrite_proxy.vars``."""
    return build_settings(
        proxy_vars.ALLOWED_DOMAINS,
        proxy_vars.PROXY_ROUTES,
        generic_prefix=proxy_vars.GENERIC_PROXY_PREFIX,
        public_url=proxy_vars.PUBLIC_URL,
        client_ip_header=proxy_vars.CLIENT_IP_HEADER,
        proxy_timeout=proxy_vars.PROXY_TIMEOUT,
        static_dir=proxy_vars.STATIC_DIR,
    )

"""
Pattern-based URL rewriting for HTML, CSS and JavaScript bodies.

This is best-effort text substitution, not parsing. Passes run in a fixed
order and each one sees the output of the previous: absolute same-target
URLs are proxy-rooted first, so the looser root-relative passes that follow
only ever see URLs that were root-relative in the upstream body.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from string import Template
from typing import TYPE_CHECKING, Callable, Iterable, List, Pattern, Union

if TYPE_CHECKING:
    from rewrite_proxy.proxy.context import ProxyRequestContext

HTML_CONTENT_TYPES = (
    "text/html",
    "application/xhtml+xml",
    "application/xml",
    "text/xml",
)
CSS_CONTENT_TYPES = ("text/css",)
SCRIPT_CONTENT_TYPES = (
    "application/javascript",
    "text/javascript",
    "application/x-javascript",
)

STATIC_ASSET_EXTENSIONS = (
    "js|css|png|jpg|jpeg|gif|svg|webp|ico|mp3|mp4|webm|ogg|woff|woff2|ttf|eot"
)

PATCH_MARKER = "data-proxy-patch"


class ContentClass(str, Enum):
    HTML = "html"
    CSS = "css"
    SCRIPT = "script"
    OPAQUE = "opaque"


def classify(content_type: str) -> ContentClass:
    content_type = (content_type or "").lower()
    if any(t in content_type for t in HTML_CONTENT_TYPES):
        return ContentClass.HTML
    if any(t in content_type for t in CSS_CONTENT_TYPES):
        return ContentClass.CSS
    if any(t in content_type for t in SCRIPT_CONTENT_TYPES):
        return ContentClass.SCRIPT
    return ContentClass.OPAQUE


@dataclass(frozen=True)
class RewriteRule:
    pattern: Pattern[str]
    replacement: Union[str, Callable[[re.Match], str]]

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def _rule(pattern: str, replacement) -> RewriteRule:
    return RewriteRule(re.compile(pattern, re.IGNORECASE), replacement)


def _url_rules(base: str, domain: str) -> List[RewriteRule]:
    """url(...) references: absolute same-target, protocol-relative, root-relative."""

    def to_proxy(m):
        return f"url({base}{m.group(1)})"

    return [
        _rule(rf"""url\(['"]?https?://{domain}(/[^)'"]*?)['"]?\)""", to_proxy),
        _rule(rf"""url\(['"]?//{domain}(/[^)'"]*?)['"]?\)""", to_proxy),
        _rule(r"""url\(['"]?(/[^)'"]*?)['"]?\)""", to_proxy),
    ]


def html_rules(base: str, domain: str, directory: str) -> List[RewriteRule]:
    def attr_to_proxy(m):
        return f'{m.group(1)}="{base}{m.group(2)}"'

    def relative_to_proxy(m):
        return f'{m.group(1)}="{base}{directory}{m.group(2)}"'

    return [
        _rule(
            rf"""(href|src|action|content)=["']https?://{domain}(/[^"']*?)["']""",
            attr_to_proxy,
        ),
        _rule(
            rf"""(href|src|action|content)=["']//{domain}(/[^"']*?)["']""",
            attr_to_proxy,
        ),
        _rule(r"""(href|src|action|content)=["'](/[^"']*?)["']""", attr_to_proxy),
        *_url_rules(base, domain),
        _rule(
            rf"""<base[^>]*href=["']https?://{domain}(?:/[^"']*?)?["'][^>]*>""",
            lambda m: f'<base href="{base}/">',
        ),
        _rule(
            r"""(href|src|action|data-src|data-href)=["']((?!https?://|//|/)[^"']+)["']""",
            relative_to_proxy,
        ),
    ]


def css_rules(base: str, domain: str, directory: str) -> List[RewriteRule]:
    return [
        *_url_rules(base, domain),
        _rule(
            r"""url\(['"]?(?!https?://|//|/|data:|#)([^)'"]*)['"]?\)""",
            lambda m: f"url({base}{directory}{m.group(1)})",
        ),
    ]


def script_rules(base: str, domain: str) -> List[RewriteRule]:
    def literal_to_proxy(m):
        return f"{m.group(1)}{base}{m.group(2)}{m.group(3)}"

    return [
        _rule(rf"""(['"])https?://{domain}(/[^'"]*?)(['"])""", literal_to_proxy),
        _rule(rf"""(['"])//{domain}(/[^'"]*?)(['"])""", literal_to_proxy),
        _rule(
            rf"""(['"])(/[^'"]*?\.(?:{STATIC_ASSET_EXTENSIONS}))(['"])""",
            literal_to_proxy,
        ),
    ]


# Fixes root-relative references in nodes that page scripts insert after load.
PATCH_SCRIPT = Template(
    r"""
<script data-proxy-patch="1">
(function() {
  var base = ${base};
  var attrs = ['src', 'href', 'data-src', 'data-href'];

  function isRootRelative(val) {
    return !!val && val.charAt(0) === '/' && val.charAt(1) !== '/';
  }

  function fixElement(el) {
    attrs.forEach(function(attr) {
      if (el.hasAttribute(attr)) {
        var val = el.getAttribute(attr);
        if (isRootRelative(val)) {
          el.setAttribute(attr, base + val);
        }
      }
    });
    var style = el.getAttribute('style');
    if (style && style.indexOf('url') !== -1) {
      el.setAttribute('style', style.replace(/url\(['"]?(\/[^)'"]*?)['"]?\)/gi, function(match, path) {
        return isRootRelative(path) ? 'url' + '(' + base + path + ')' : match;
      }));
    }
  }

  var observer = new MutationObserver(function(mutations) {
    mutations.forEach(function(mutation) {
      if (mutation.type !== 'childList') {
        return;
      }
      mutation.addedNodes.forEach(function(node) {
        if (node.nodeType !== 1) {
          return;
        }
        fixElement(node);
        node.querySelectorAll('script[src], link[href], img[src], a[href], [data-src], [data-href], [style]').forEach(fixElement);
      });
    });
  });

  observer.observe(document.body || document.documentElement, {
    childList: true,
    subtree: true
  });
})();
</script>
"""
)


def patch_script(base: str) -> str:
    return PATCH_SCRIPT.substitute(base=json.dumps(base))


def inject_patch_script(html: str, base: str) -> str:
    """Insert the patch script before the last ``</body>``, once per document."""
    if PATCH_MARKER in html:
        return html
    script = patch_script(base)
    body_close = html.lower().rfind("</body>")
    if body_close == -1:
        return html + script
    return html[:body_close] + script + html[body_close:]


def apply_rules(text: str, rules: Iterable[RewriteRule]) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text


def rewrite_body(
    text: str,
    content_class: ContentClass,
    ctx: ProxyRequestContext,
    extra_rules: Iterable[RewriteRule] = (),
) -> str:
    """Rewrite URLs in ``text`` so they resolve through the proxy."""
    base = ctx.proxy_base
    domain = re.escape(ctx.target_host)
    directory = ctx.target_directory

    if content_class is ContentClass.HTML:
        text = apply_rules(text, html_rules(base, domain, directory))
        text = apply_rules(text, extra_rules)
        return inject_patch_script(text, base)
    if content_class is ContentClass.CSS:
        return apply_rules(text, css_rules(base, domain, directory))
    if content_class is ContentClass.SCRIPT:
        return apply_rules(text, script_rules(base, domain))
    return text

"""
Tamuu Kernel — Proxied Asset URLs

URLs on restricted object-storage domains cannot be drawn cross-origin, so
every render target rewrites them to a same-origin proxy path:

    https://x.r2.dev/a.png → /api/proxy-image?url=https%3A%2F%2Fx.r2.dev%2Fa.png

The rewrite is a pure string transform and is idempotent: an already
proxied URL, a data: URL, or an unparseable URL passes through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit

from engine.kernel.errors import ValidationFailure

RESTRICTED_DOMAINS: tuple[str, ...] = (
    "pub-1e0a9ae6152440268987d00a564a8da5.r2.dev",
    "r2.cloudflarestorage.com",
)
PROXY_PATH = "/api/proxy-image"


@dataclass(frozen=True)
class ProxyRule:
    domains: tuple[str, ...] = RESTRICTED_DOMAINS
    path: str = PROXY_PATH


DEFAULT_PROXY_RULE = ProxyRule()


def _host_matches(host: str, domains: tuple[str, ...]) -> bool:
    host = host.lower()
    return any(host == d or host.endswith("." + d) for d in domains)


def is_proxied(url: str, rule: ProxyRule = DEFAULT_PROXY_RULE) -> bool:
    return url.startswith(rule.path + "?") or f"{rule.path}?url=" in url


def is_restricted(url: str, rule: ProxyRule = DEFAULT_PROXY_RULE) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    return _host_matches(parts.hostname, rule.domains)


def proxied_url(url: str | None, rule: ProxyRule = DEFAULT_PROXY_RULE) -> str:
    """Rewrite a restricted-domain URL to its proxy form. Everything else passes through."""
    if not url:
        return ""
    if url.startswith("data:") or is_proxied(url, rule):
        return url
    if not is_restricted(url, rule):
        return url
    return f"{rule.path}?url={quote(url, safe='')}"


def validate_proxy_target(url: str | None, rule: ProxyRule = DEFAULT_PROXY_RULE) -> str:
    """
    Check a proxy request target.

    Raises ValidationFailure("invalid_url") for a missing or malformed URL
    and ValidationFailure("domain_not_allowed") for hosts outside the rule.
    """
    if not url:
        raise ValidationFailure("invalid_url", "Missing url parameter")
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ValidationFailure("invalid_url", "Invalid URL") from e
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValidationFailure("invalid_url", "Invalid URL")
    if not _host_matches(parts.hostname, rule.domains):
        raise ValidationFailure("domain_not_allowed", "Domain not allowed")
    return url

"""
Proxied asset URL tests.
"""

import pytest

from engine.kernel.errors import ValidationFailure
from engine.kernel.urls import ProxyRule, is_restricted, proxied_url, validate_proxy_target

R2 = "https://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev/photos/2026/01/a b.png"


class TestProxiedUrl:
    def test_restricted_url_is_rewritten(self):
        assert proxied_url(R2) == (
            "/api/proxy-image?url=https%3A%2F%2Fpub-1e0a9ae6152440268987d00a564a8da5.r2.dev"
            "%2Fphotos%2F2026%2F01%2Fa%20b.png"
        )

    def test_idempotent(self):
        once = proxied_url(R2)
        assert proxied_url(once) == once

    def test_subdomain_of_restricted_domain(self):
        assert is_restricted("https://acct.r2.cloudflarestorage.com/x.png")
        assert proxied_url("https://acct.r2.cloudflarestorage.com/x.png").startswith("/api/proxy-image?url=")

    @pytest.mark.parametrize(
        "url",
        [
            "https://images.example.com/a.png",
            "data:image/png;base64,AAAA",
            "/static/local.png",
            "not a url",
            "ftp://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev/a.png",
        ],
    )
    def test_passthrough(self, url):
        assert proxied_url(url) == url

    def test_empty(self):
        assert proxied_url(None) == ""
        assert proxied_url("") == ""

    def test_custom_rule(self):
        rule = ProxyRule(domains=("cdn.internal",), path="/img")
        assert proxied_url("http://cdn.internal/a.png", rule) == "/img?url=http%3A%2F%2Fcdn.internal%2Fa.png"
        assert proxied_url(R2, rule) == R2


class TestValidateProxyTarget:
    def test_allowed(self):
        assert validate_proxy_target(R2) == R2

    @pytest.mark.parametrize("url", [None, "", "nope", "javascript:alert(1)", "https://"])
    def test_invalid(self, url):
        with pytest.raises(ValidationFailure) as exc:
            validate_proxy_target(url)
        assert exc.value.reason == "invalid_url"

    def test_forbidden_domain(self):
        with pytest.raises(ValidationFailure) as exc:
            validate_proxy_target("https://evil.example.com/a.png")
        assert exc.value.reason == "domain_not_allowed"

    def test_lookalike_domain_is_forbidden(self):
        with pytest.raises(ValidationFailure):
            validate_proxy_target("https://notr2.cloudflarestorage.com.evil.io/a.png")

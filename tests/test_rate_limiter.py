"""Tests for the in-memory rate limiter."""

from types import SimpleNamespace

from app.core.config import Settings
from app.core.rate_limiter import RateLimitConfig, RateLimiter, get_client_ip


def make_request(headers=None, host="10.0.0.9"):
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=headers or {}, client=client)


class TestRateLimiter:

    def test_allows_up_to_limit(self):
        limiter = RateLimiter({"auth_login": RateLimitConfig(max_requests=2, window_seconds=60)})

        assert limiter.is_allowed("auth_login", "1.1.1.1") == (True, 0)
        assert limiter.is_allowed("auth_login", "1.1.1.1") == (True, 0)

        allowed, retry_after = limiter.is_allowed("auth_login", "1.1.1.1")
        assert allowed is False
        assert 1 <= retry_after <= 61

    def test_clients_are_counted_separately(self):
        limiter = RateLimiter({"auth_login": RateLimitConfig(max_requests=1, window_seconds=60)})

        assert limiter.is_allowed("auth_login", "1.1.1.1")[0]
        assert limiter.is_allowed("auth_login", "2.2.2.2")[0]
        assert not limiter.is_allowed("auth_login", "1.1.1.1")[0]

    def test_window_slides(self):
        now = [1000.0]
        limiter = RateLimiter(
            {"auth_refresh": RateLimitConfig(max_requests=1, window_seconds=60)},
            timer=lambda: now[0],
        )

        assert limiter.is_allowed("auth_refresh", "1.1.1.1") == (True, 0)
        now[0] += 30
        assert limiter.is_allowed("auth_refresh", "1.1.1.1") == (False, 31)
        now[0] += 30
        assert limiter.is_allowed("auth_refresh", "1.1.1.1") == (True, 0)

    def test_reset(self):
        limiter = RateLimiter({"auth_login": RateLimitConfig(max_requests=1, window_seconds=60)})
        limiter.is_allowed("auth_login", "1.1.1.1")
        limiter.reset("auth_login", "1.1.1.1")

        assert limiter.is_allowed("auth_login", "1.1.1.1")[0]

    def test_disabled_or_unknown_always_allows(self):
        disabled = RateLimiter(
            {"auth_login": RateLimitConfig(max_requests=0, window_seconds=60)}, enabled=False
        )
        assert disabled.is_allowed("auth_login", "1.1.1.1") == (True, 0)
        assert RateLimiter().is_allowed("anything", "1.1.1.1") == (True, 0)

    def test_from_settings_buckets(self):
        limiter = RateLimiter.from_settings(
            Settings(auth_rate_limit_requests=7, auth_rate_limit_window_seconds=30)
        )

        assert set(limiter.configs) == {"auth_login", "auth_register", "auth_refresh"}
        assert limiter.configs["auth_refresh"].max_requests == 7
        assert limiter.configs["auth_refresh"].window_seconds == 30


class TestClientIp:

    def test_forwarded_for_from_trusted_proxy(self):
        request = make_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
        assert get_client_ip(request, ["10.0.0.9"]) == "203.0.113.5"

    def test_real_ip_from_trusted_proxy(self):
        request = make_request({"X-Real-IP": " 198.51.100.7 "})
        assert get_client_ip(request, ["10.0.0.9"]) == "198.51.100.7"

    def test_headers_ignored_from_untrusted_peer(self):
        request = make_request({"X-Forwarded-For": "203.0.113.5", "X-Real-IP": "198.51.100.7"})
        assert get_client_ip(request, ["127.0.0.1"]) == "10.0.0.9"

    def test_defaults_to_configured_proxies(self):
        request = make_request({"X-Forwarded-For": "203.0.113.5"}, host="127.0.0.1")
        request.app = SimpleNamespace(state=SimpleNamespace(settings=Settings()))
        assert get_client_ip(request) == "203.0.113.5"

    def test_direct_client(self):
        assert get_client_ip(make_request(), []) == "10.0.0.9"

    def test_unknown(self):
        assert get_client_ip(make_request(host=None), []) == "unknown"

"""
In-memory sliding-window rate limiter for the anonymous auth endpoints.

Buckets are per endpoint family and keyed by client IP. State lives in the
process, so every instance behind a load balancer counts on its own.
"""

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque, Dict, Iterable, Optional, Tuple

from app.core.config import Settings

logger = logging.getLogger(__name__)

AUTH_BUCKETS = ("auth_login", "auth_register", "auth_refresh")


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int  # Maximum requests allowed
    window_seconds: int  # Time window in seconds


class RateLimiter:
    """Thread-safe sliding-window limiter."""

    def __init__(
        self,
        configs: Optional[Dict[str, RateLimitConfig]] = None,
        enabled: bool = True,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.configs = dict(configs or {})
        self.enabled = enabled
        self._timer = timer
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        limit = RateLimitConfig(
            max_requests=settings.auth_rate_limit_requests,
            window_seconds=settings.auth_rate_limit_window_seconds,
        )
        return cls(
            configs={bucket: limit for bucket in AUTH_BUCKETS},
            enabled=settings.rate_limit_enabled,
        )

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Count one request against ``limit_type`` for ``identifier``.

        Returns:
            Tuple of (is_allowed, retry_after_seconds). Rejected requests are
            not counted.
        """
        if not self.enabled:
            return True, 0

        config = self.configs.get(limit_type)
        if config is None:
            logger.warning(f"Unknown rate limit type: {limit_type}")
            return True, 0

        key = f"{limit_type}:{identifier}"
        with self._lock:
            now = self._timer()
            hits = self._hits[key]
            while hits and hits[0] <= now - config.window_seconds:
                hits.popleft()

            if len(hits) >= config.max_requests:
                if not hits:
                    return False, config.window_seconds
                retry_after = int(hits[0] + config.window_seconds - now) + 1
                return False, max(retry_after, 1)

            hits.append(now)
            return True, 0

    def reset(self, limit_type: str, identifier: str) -> None:
        with self._lock:
            self._hits.pop(f"{limit_type}:{identifier}", None)


def get_client_ip(request, trusted_proxies: Optional[Iterable[str]] = None) -> str:
    """
    Extract the client IP.

    Proxy headers are only honoured when the direct peer is a trusted proxy;
    ``trusted_proxies`` defaults to the app's configured list.
    """
    peer = request.client.host if request.client else None
    if trusted_proxies is None:
        trusted_proxies = request.app.state.settings.trusted_proxies_list

    if peer is not None and peer in trusted_proxies:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # first hop is the original client
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return peer or "unknown"

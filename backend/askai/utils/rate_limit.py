"""In-process sliding-window rate limiting for the ask endpoints."""

import ipaddress
import math
import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import HTTPException, Request

from askai.core.config import get_settings

ASK_WINDOW_SECONDS = 60

_MAX_BUCKETS = 50_000
_PRUNE_INTERVAL_SECONDS = 60


def _trim(bucket: deque, cutoff: float) -> None:
    while bucket and bucket[0] <= cutoff:
        bucket.popleft()


class SlidingWindowRateLimiter:
    def __init__(
        self,
        *,
        max_buckets: int = _MAX_BUCKETS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._buckets: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets
        self._prune_interval_seconds = max(1, int(prune_interval_seconds))
        self._last_prune_at = 0.0

    def __len__(self) -> int:
        return len(self._buckets)

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, float]:
        """Record a hit for *key* if the window has room.

        Returns ``(allowed, retry_after)``; ``retry_after`` is the number of
        seconds until the oldest hit leaves the window, ``0.0`` when allowed.
        """
        if limit <= 0 or window_seconds <= 0:
            return True, 0.0
        now = time.monotonic()
        with self._lock:
            if len(self._buckets) > self._max_buckets or (now - self._last_prune_at) >= self._prune_interval_seconds:
                self._prune_stale(now - window_seconds)
                self._last_prune_at = now

            bucket = self._buckets.setdefault(key, deque())
            _trim(bucket, now - window_seconds)
            if len(bucket) >= limit:
                return False, max(0.0, bucket[0] + window_seconds - now)
            bucket.append(now)
            return True, 0.0

    def _prune_stale(self, cutoff: float) -> None:
        """Drop buckets with no hits after *cutoff* (called under lock)."""
        for key in list(self._buckets):
            bucket = self._buckets[key]
            _trim(bucket, cutoff)
            if not bucket:
                del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_prune_at = 0.0


rate_limiter = SlidingWindowRateLimiter()


def _ip_in_networks(ip: str, networks: list[str]) -> bool:
    if not ip:
        return False
    if ip in networks:
        return True
    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in networks:
        try:
            if ip_obj in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def _forwarded_ip(request: Request) -> Optional[str]:
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    # Rightmost entry is the one appended by our own proxy.
    parts = [p.strip() for p in (request.headers.get("x-forwarded-for") or "").split(",") if p.strip()]
    return parts[-1] if parts else None


def get_client_ip(request: Request, trusted_proxy_cidrs: Optional[list[str]] = None) -> Optional[str]:
    """Extract client IP from request.

    ``X-Real-IP`` and ``X-Forwarded-For`` are honoured only when the direct
    peer is listed in ``TRUSTED_PROXY_CIDRS``; otherwise they are ignored.
    """
    peer_ip = request.client.host if request.client else None
    trusted = trusted_proxy_cidrs
    if trusted is None:
        trusted = get_settings().trusted_proxy_cidrs

    if peer_ip and trusted and _ip_in_networks(peer_ip, trusted):
        return _forwarded_ip(request) or peer_ip
    return peer_ip


def enforce_ask_rate_limit(request: Request) -> None:
    """Raise 429 once a client IP exceeds ``RATE_LIMIT_ASK_PER_MIN``."""
    settings = get_settings()
    if not settings.rate_limit_ask_enabled:
        return
    ip = get_client_ip(request) or "unknown"
    allowed, retry_after = rate_limiter.allow(f"ask:ip:{ip}", settings.rate_limit_ask_per_min, ASK_WINDOW_SECONDS)
    if not allowed:
        raise HTTPException(
            429,
            "Too Many Requests",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )

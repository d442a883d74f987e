"""Rate limiting middleware for the portfolio API

Per-IP request limits on the chat endpoint, which fronts a paid upstream
LLM. Other paths pass through untouched.

Security features:
- Client IP is the socket peer unless trusted_proxy_hops is configured
- Behind N proxies, only the address the N-th proxy from the right appended
  to X-Forwarded-For is used; client-supplied entries to its left are ignored
- IP format validation before trusting forwarded headers
- Bounded memory via TTLCache buckets
"""

from __future__ import annotations

import ipaddress
import time
from collections.abc import Callable, Iterable
from typing import Any

from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from portfolio.config import RATE_LIMIT_MAX_IPS, RATE_LIMITED_PATHS, TRUSTED_PROXY_HOPS
from portfolio.observability.telemetry import counter, log_event

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiting per client IP.

    Only requests whose path starts with one of `paths` are counted.
    Single-process only; a multi-instance deployment needs a shared store.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = 10,
        requests_per_hour: int = 200,
        paths: Iterable[str] = RATE_LIMITED_PATHS,
        trusted_proxy_hops: int = TRUSTED_PROXY_HOPS,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.paths = tuple(paths)

        # {ip: [timestamp, ...]}; TTLCache evicts idle IPs
        self.minute_buckets: TTLCache[str, list[float]] = TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=120)
        self.hour_buckets: TTLCache[str, list[float]] = TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=7200)

        if trusted_proxy_hops < 0:
            raise ValueError(f"trusted_proxy_hops must be >= 0, got {trusted_proxy_hops}")
        self.trusted_proxy_hops = trusted_proxy_hops

    def _is_valid_ip(self, ip_str: str) -> bool:
        try:
            ipaddress.ip_address(ip_str)
            return True
        except ValueError:
            return False

    def _forwarded_ip(self, request: Request) -> str | None:
        """Address appended by the outermost trusted proxy, or None if absent/invalid."""
        forwarded = request.headers.get("X-Forwarded-For")
        if not forwarded:
            return None
        hops = [part.strip() for part in forwarded.split(",")]
        if len(hops) < self.trusted_proxy_hops:
            return None
        ip = hops[-self.trusted_proxy_hops]
        return ip if self._is_valid_ip(ip) else None

    def _get_client_ip(self, request: Request) -> str:
        """Socket peer IP, or the trusted X-Forwarded-For hop when behind proxies."""
        if self.trusted_proxy_hops:
            forwarded = self._forwarded_ip(request)
            if forwarded:
                return forwarded

        return request.client.host if request.client else "unknown"

    def _clean_old_requests(self, bucket: list[float], max_age_seconds: int) -> list[float]:
        """Remove requests older than max_age_seconds"""
        now = time.time()
        return [ts for ts in bucket if now - ts < max_age_seconds]

    def _limited(self, client_ip: str, window: str, count: int, retry_after: int) -> Response:
        counter("api.rate_limited")
        log_event("api.rate_limit.exceeded", ip=client_ip, limit=window, count=count)
        return JSONResponse(
            status_code=429,
            content={"error": RATE_LIMIT_MESSAGE, "retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(self.paths) or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = self._get_client_ip(request)

        minute_bucket = self._clean_old_requests(self.minute_buckets.get(client_ip, []), 60)
        hour_bucket = self._clean_old_requests(self.hour_buckets.get(client_ip, []), 3600)
        self.minute_buckets[client_ip] = minute_bucket
        self.hour_buckets[client_ip] = hour_bucket

        if len(minute_bucket) >= self.requests_per_minute:
            return self._limited(client_ip, "minute", len(minute_bucket), 60)
        if len(hour_bucket) >= self.requests_per_hour:
            return self._limited(client_ip, "hour", len(hour_bucket), 3600)

        now = time.time()
        minute_bucket.append(now)
        hour_bucket.append(now)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit-Minute"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining-Minute"] = str(
            max(0, self.requests_per_minute - len(minute_bucket))
        )
        return response

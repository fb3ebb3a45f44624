from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from refined_crm.api.errors import error_response
from refined_crm.core.config import get_settings


logger = logging.getLogger("refined_crm.rate_limit")

API_PREFIX = "/api/"


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


class _TokenBucketLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], _BucketState] = {}

    def take(self, caller: str, route_group: str, capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)
        key = (caller, route_group)

        with self._lock:
            current = self._buckets.get(key)
            if current is None:
                current = _BucketState(tokens=float(capacity), last_refill=now)
                self._buckets[key] = current

            elapsed = max(0.0, now - current.last_refill)
            current.tokens = min(float(capacity), current.tokens + (elapsed * refill_rate))
            current.last_refill = now

            if current.tokens < 1.0:
                retry_after = max(1, math.ceil((1.0 - current.tokens) / refill_rate))
                return False, retry_after

            current.tokens -= 1.0
            return True, 0

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()


class CrmMutationRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle writes under ``/api`` per caller and resource; reads pass through."""

    mutating_methods = {"POST", "PUT", "PATCH", "DELETE"}

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled:
            return await call_next(request)

        path = request.url.path
        if not path.startswith(API_PREFIX) or request.method.upper() not in self.mutating_methods:
            return await call_next(request)

        caller = _resolve_caller(request)
        route_group = _resolve_route_group(path)
        allowed, retry_after = _limiter.take(
            caller=caller,
            route_group=route_group,
            capacity=settings.rate_limit_mutations_per_minute,
            window_seconds=60,
        )
        if allowed:
            return await call_next(request)

        logger.warning("http.rate_limited", extra={"route_group": route_group, "retry_after": retry_after})
        response = error_response(
            request,
            status_code=429,
            code="RateLimited",
            message="Too many requests, please try again later",
        )
        response.headers["Retry-After"] = str(retry_after)
        return response


def _resolve_route_group(path: str) -> str:
    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        return "api"
    return parts[1]


def _resolve_caller(request: Request) -> str:
    """Key by token subject when one verifies, otherwise by client address."""

    fallback = f"ip:{request.client.host}" if request.client is not None else "anonymous"
    auth_header = request.headers.get("authorization", "")
    token = auth_header.removeprefix("Bearer ") if auth_header.startswith("Bearer ") else ""
    if not token:
        return fallback

    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return fallback

    subject = payload.get("sub")
    if subject is None:
        return fallback
    return f"user:{subject}"


def reset_rate_limiter() -> None:
    _limiter.clear()

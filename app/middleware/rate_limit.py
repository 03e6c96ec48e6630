from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict, deque
from datetime import datetime, timedelta
import asyncio
import logging
from typing import Deque, Dict

from app.core.config import get_settings
settings = get_settings()

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window, in-memory rate limiting per client IP.
    Counts are per process; run a shared store when scaling out.
    """

    EXEMPT_PATHS = ("/health", "/health/deep", "/docs", "/redoc", "/openapi.json")

    def __init__(self, app, max_requests: int = None, window_seconds: int = None):
        super().__init__(app)
        self.max_requests = max_requests or settings.RATE_LIMIT_REQUESTS
        self.window = timedelta(seconds=window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS)
        # Store: {ip_address: deque[timestamp]}
        self.requests: Dict[str, Deque[datetime]] = defaultdict(deque)
        self.lock = asyncio.Lock()
        self.last_sweep = datetime.now()

    async def dispatch(self, request: Request, call_next):
        """Process request with rate limiting"""

        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client_ip = self._get_client_ip(request)

        async with self.lock:
            remaining = self._consume(client_ip)

        if remaining is None:
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "rate_limited",
                    "detail": f"Rate limit exceeded. Max {self.max_requests} requests "
                              f"per {int(self.window.total_seconds())} seconds",
                    "request_id": getattr(request.state, "request_id", "unknown"),
                },
                headers={"Retry-After": str(int(self.window.total_seconds()))},
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(self.window.total_seconds()))

        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request"""
        # Check for forwarded IP (when behind proxy)
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"

    def _consume(self, client_ip: str, now: datetime = None):
        """
        Record a request if the client is under its limit.

        Returns:
            Requests left in the window, or None when the limit is hit
        """
        now = now or datetime.now()
        window_start = now - self.window

        if now - self.last_sweep >= self.window:
            self._cleanup_old_entries(window_start)
            self.last_sweep = now

        hits = self.requests[client_ip]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return None

        hits.append(now)
        return self.max_requests - len(hits)

    def _cleanup_old_entries(self, window_start: datetime) -> None:
        """Drop clients with no requests left in the window"""
        for client_ip in list(self.requests.keys()):
            hits = self.requests[client_ip]
            while hits and hits[0] <= window_start:
                hits.popleft()

            if not hits:
                del self.requests[client_ip]

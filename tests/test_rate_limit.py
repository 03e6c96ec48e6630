from datetime import datetime, timedelta

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.middleware.rate_limit import RateLimitMiddleware


def build_app(max_requests):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=60)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


async def test_requests_over_the_limit_get_429():
    transport = ASGITransport(app=build_app(2))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.get("/ping")
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Remaining"] == "1"

        assert (await client.get("/ping")).status_code == 200

        blocked = await client.get("/ping")
        assert blocked.status_code == 429
        assert blocked.json()["error"] == "rate_limited"
        assert blocked.headers["Retry-After"] == "60"


async def test_clients_are_counted_separately():
    transport = ASGITransport(app=build_app(1))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        assert (await client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"})).status_code == 200
        assert (await client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"})).status_code == 200
        assert (await client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"})).status_code == 429


async def test_health_is_exempt():
    transport = ASGITransport(app=build_app(1))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        for _ in range(3):
            assert (await client.get("/health")).status_code == 200


def test_idle_clients_are_evicted():
    middleware = RateLimitMiddleware(FastAPI(), max_requests=5, window_seconds=1)
    start = datetime.now()

    for i in range(1000):
        middleware._consume(f"10.1.{i // 256}.{i % 256}", now=start)
    assert len(middleware.requests) == 1000

    assert middleware._consume("10.9.9.9", now=start + timedelta(seconds=2)) == 4
    assert list(middleware.requests) == ["10.9.9.9"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from apps.api.middlewares.metrics import MetricsMiddleware
from apps.api.routers import health, matches, scores, swipes
from apps.matching import build_services
from apps.matching.admission import (
    HttpRateLimitService,
    RateLimitService,
    RedisRateLimitService,
    quotas_from_settings,
)
from apps.matching.events import RedisStreamEventSink
from apps.matching.matches import RedisMatchCounter
from core import close_redis, get_redis
from core.config import settings
from core.db import create_tables, engine
from core.store import SqlKeyValueStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    if settings.auto_create_tables:
        await create_tables()

    redis_client = await get_redis()
    http_client: httpx.AsyncClient | None = None
    rate_limit_service: RateLimitService
    if settings.rate_limit_backend == "http":
        http_client = httpx.AsyncClient(
            base_url=settings.rate_limit_service_url, timeout=settings.rate_limit_timeout_seconds
        )
        rate_limit_service = HttpRateLimitService(http_client)
    else:
        rate_limit_service = RedisRateLimitService(redis_client, quotas_from_settings(settings))

    services = build_services(
        settings,
        store=SqlKeyValueStore(engine),
        rate_limit_service=rate_limit_service,
        event_sink=RedisStreamEventSink(redis_client, maxlen=settings.event_stream_maxlen),
        counters=RedisMatchCounter(redis_client),
    )
    await services.tasks.start()
    app.state.services = services
    logger.info(f"Matching services started (rate limit backend: {settings.rate_limit_backend})")

    yield

    # Shutdown
    await services.tasks.stop()
    if http_client is not None:
        await http_client.aclose()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Swipematch API",
    description="Compatibility scoring, swipes and mutual matches",
    version="0.1.0",
    lifespan=lifespan,
)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(scores.router)  # Already has /scores prefix
app.include_router(swipes.router)  # Already has /swipes prefix
app.include_router(matches.router)  # Already has /matches prefix


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"status": "ok", "service": "swipematch"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

"""Main application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import redis
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from config import (
    API_VERSION,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_PER_MINUTE_IP,
    RATE_LIMIT_PER_MINUTE_USER,
    REDIS_URL,
    SEED_DATA,
    STORE_BACKEND,
)
from database import init_db, engine
from errors import StorefrontError
from monitoring import init_profiling
from logging_config import setup_logging
from redis_rate_limiter import RedisRateLimiter
from repositories import MemoryStore
from routers import admin, auctions, orders, products, reviews, auth as auth_router
from seed import seed_store

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)

# Sync client for the rate limiter middleware
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting application...", extra={"store_backend": STORE_BACKEND})

    if STORE_BACKEND == "memory":
        store = MemoryStore()
        if SEED_DATA:
            seed_store(store)
        app.state.memory_store = store
    else:
        init_db()

    if RATE_LIMIT_ENABLED:
        RedisInstrumentor().instrument(redis_client=redis_client)

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    redis_client.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Storefront Service",
    version=API_VERSION,
    lifespan=lifespan
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """Render domain errors as {"detail": message} with their HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("Request failed", extra={
        "path": request.url.path,
        "method": request.method,
        "status_code": exc.status_code,
        "error": type(exc).__name__,
        "detail": exc.message
    })
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Security middleware with Redis-backed dual-tier rate limiting
if RATE_LIMIT_ENABLED:
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER
    )

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument FastAPI and SQLAlchemy
FastAPIInstrumentor.instrument_app(app)
SQLAlchemyInstrumentor().instrument(engine=engine)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(auth_router.router)
app.include_router(products.router)
app.include_router(reviews.router)
app.include_router(orders.router)
app.include_router(auctions.router)
app.include_router(admin.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

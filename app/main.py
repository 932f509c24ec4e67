import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .cache import Cache, get_redis_client
from .config import ALLOWED_ORIGINS, API_PREFIX, DATABASE_URL
from .database import create_engine_from_url, create_session_factory, create_tables
from .domain.appointments.router import router as appointments_router
from .domain.doctors.router import router as doctors_router
from .shared.errors import AppError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    engine: Optional[AsyncEngine] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis_client: Optional[redis.Redis] = None,
) -> FastAPI:
    """
    Build the API. Engine, session factory and Redis client are created from
    config unless injected (tests pass SQLite and fakeredis).
    """
    owns_redis = redis_client is None
    engine = engine or create_engine_from_url(DATABASE_URL)
    session_factory = session_factory or create_session_factory(engine)
    redis_client = redis_client or get_redis_client()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        try:
            await create_tables(engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            # Another worker may have created them concurrently
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info("Database tables already exist (created by another worker)")
            else:
                logger.error(f"Failed to create database tables: {e}")
                raise

        try:
            await app.state.cache.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed - responses will not be cached: {e}")

        yield

        logger.info("Application shutting down...")
        if owns_redis:
            await redis_client.aclose()
        await engine.dispose()

    app = FastAPI(title="Clinic Appointments API", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.cache = Cache(redis_client)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.kind, "detail": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed input (bad dates, non-numeric ids, unknown fields) is a 400"""
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        message = "; ".join(
            f"{'.'.join(str(p) for p in error.get('loc', ()))}: {error.get('msg')}" for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "bad_request", "detail": message})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

    logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(doctors_router, prefix=API_PREFIX)
    app.include_router(appointments_router, prefix=API_PREFIX)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/health/redis")
    async def redis_health_check():
        """Check Redis connectivity for monitoring"""
        try:
            start_time = time.time()
            await app.state.cache.ping()
            response_time = (time.time() - start_time) * 1000  # Convert to milliseconds

            return {
                "status": "healthy",
                "redis": {"connected": True, "response_time_ms": round(response_time, 2)},
            }
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}

    return app


app = create_app()

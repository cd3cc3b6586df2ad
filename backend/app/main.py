"""Main FastAPI application."""
import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.settings import settings
from app.api.admin import router as admin_router
from app.api.contract import router as contract_router
from app.api.markets import router as markets_router
from app.api.wallets import router as wallets_router
from app.domain.common.errors import DomainError
from app.infra.db import base as db_base
from app.infra.db.base import Base
# Import all models to ensure they're registered with Base
from app.infra.db.models import (  # noqa: F401
    UserModel,
    GroupModel,
    GroupMemberModel,
    MarketModel,
    VoteModel,
    InitializationLockModel,
)
from app.infra.jobs.monitoring import start_background_jobs, stop_background_jobs
from app.services.container import close_container, get_container

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    if db_base.engine is not None:
        try:
            async with db_base.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            # Don't fail startup - database might not be ready yet
            logger.warning("Could not connect to database during startup: %s", e)

    tasks: list[asyncio.Task] = []
    if settings.background_tasks_enabled and db_base.engine is not None:
        container = get_container()
        tasks = start_background_jobs(container, settings)
        logger.info("Background jobs started: relay monitoring, market sync")

    yield

    # Shutdown (CancelledError here is normal on Ctrl+C)
    try:
        await stop_background_jobs(tasks)
        await close_container()
        if db_base.engine is not None:
            await db_base.engine.dispose()
    except asyncio.CancelledError:
        logger.info("Lifespan shutdown cancelled (e.g. Ctrl+C); cleanup attempted.")
        raise


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.info("[REQUEST] %s %s", request.method, request.url.path)
        logger.debug("   Query params: %s", dict(request.query_params))

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            "[RESPONSE] %s %s - %s (%.3fs)",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )
        return response


# Add logging middleware AFTER CORS (CORS must be first)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with logging."""
    errors = exc.errors()
    logger.warning("[VALIDATION ERROR] %s %s: %d error(s)", request.method, request.url.path, len(errors))
    return JSONResponse(
        status_code=422,
        content={"code": "VALIDATION_ERROR", "message": "Invalid request", "retryable": False, "detail": errors},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Render every domain error with its own status code and stable code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Health check (root and under /v1 so GET /v1/health works behind a /v1 proxy prefix)
@app.get("/health")
@app.get(f"{settings.api_v1_prefix}/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": settings.app_version}


# Readiness: config, packages, DB, chain RPC, relay wallet
@app.get("/ready")
async def readiness():
    """Readiness endpoint: run all checks and return 200 if ready, 503 otherwise."""
    from app.readiness import run_all_checks_async, is_ready
    checks = await run_all_checks_async()
    ready, summary = is_ready(checks)
    if ready:
        return {"ready": True, "checks": summary}
    return JSONResponse(
        status_code=503,
        content={"ready": False, "checks": summary},
    )


# API v1 routes
app.include_router(markets_router, prefix=settings.api_v1_prefix)
app.include_router(wallets_router, prefix=settings.api_v1_prefix)
app.include_router(contract_router, prefix=settings.api_v1_prefix)
app.include_router(admin_router, prefix=settings.api_v1_prefix)

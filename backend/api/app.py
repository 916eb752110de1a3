"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import Settings, get_settings
from core.database import get_database_manager, init_database_manager
from core.logging import setup_logging
from routers import battle_router, cleanup_router, presence_router
from services import BattleService, PresenceService
from services.sweeper import sweep_once
from shared.repositories import (
    BattleRepository,
    PresenceRepository,
    ProfileRepository,
    SessionRepository,
)

logger = logging.getLogger(__name__)

_start_time: float = 0.0
_sweeper_task: asyncio.Task | None = None
_pool_heartbeat_task: asyncio.Task | None = None
_db_retry_task: asyncio.Task | None = None


async def _sweeper_loop(settings: Settings) -> None:
    """Reap stale presence and advance battle timers on a fixed interval.

    On repeated failure, backs off to avoid flooding logs.
    """
    base = settings.reaper_interval_seconds
    interval = base
    fail_count = 0
    while True:
        await asyncio.sleep(interval)
        db_manager = get_database_manager()
        if db_manager is None or not db_manager.is_connected:
            continue
        try:
            pool = db_manager.pool
            presence = PresenceService(
                PresenceRepository(pool),
                ProfileRepository(pool),
                stale_after=timedelta(seconds=settings.presence_stale_seconds),
            )
            battles = BattleService(SessionRepository(pool), BattleRepository(pool))
            await sweep_once(presence, battles, settings.presence_ttl_seconds)
            if fail_count > 0:
                logger.info(f"Sweeper recovered after {fail_count} failures")
            fail_count = 0
            interval = base
        except asyncio.CancelledError:
            break
        except Exception as e:
            fail_count += 1
            if fail_count <= 3:
                logger.warning(f"Sweeper failed ({fail_count}): {type(e).__name__}: {e}")
            elif fail_count == 4:
                logger.warning(f"Sweeper still failing ({fail_count}x), suppressing until recovery")
            interval = min(base * (2 ** min(fail_count - 1, 3)), 300)


async def _pool_heartbeat_loop() -> None:
    """Ping the pool so the Supabase pooler does not reap idle connections."""
    interval = 15
    fail_count = 0
    while True:
        await asyncio.sleep(interval)
        try:
            db_manager = get_database_manager()
            if db_manager is None or not db_manager.is_connected:
                continue
            if await db_manager.check_health():
                if fail_count > 0:
                    logger.info(f"Pool heartbeat recovered after {fail_count} failures")
                fail_count = 0
                interval = 15
                continue
            fail_count += 1
            if fail_count <= 3:
                logger.warning(f"Pool heartbeat failed ({fail_count})")
            interval = min(15 * (2 ** min(fail_count - 1, 3)), 120)
        except asyncio.CancelledError:
            break


async def _db_retry_loop(db_manager) -> None:
    """Keep retrying the DB connection after a failed startup."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        if db_manager.is_connected:
            return
        try:
            await db_manager.connect()
            logger.info("Database connected (background retry)")
            return
        except asyncio.CancelledError:
            return
        except Exception as e:
            delay = min(delay * 2, max_delay)
            logger.warning(
                f"DB background retry failed: {type(e).__name__}: {e}, next retry in {delay}s"
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time, _sweeper_task, _pool_heartbeat_task, _db_retry_task
    _start_time = time.time()

    settings = get_settings()
    logger.info("Starting live presence API")
    logger.info(f"Environment: {settings.environment}")

    # Wait for the pool before accepting requests; fall back to a background
    # retry so the process still serves /health while the DB is down.
    db_manager = init_database_manager(settings.database_url)
    try:
        await asyncio.wait_for(db_manager.connect(), timeout=30)
        logger.info("Database connected")
    except TimeoutError:
        logger.warning("DB connection timed out during startup, retrying in background")
        _db_retry_task = asyncio.create_task(_db_retry_loop(db_manager))
    except Exception as e:
        logger.error(
            f"DB connection failed during startup: {type(e).__name__}: {e}, retrying in background"
        )
        _db_retry_task = asyncio.create_task(_db_retry_loop(db_manager))

    if settings.enable_reaper:
        _sweeper_task = asyncio.create_task(_sweeper_loop(settings))
        logger.info(f"Sweeper started (interval={settings.reaper_interval_seconds}s)")

    _pool_heartbeat_task = asyncio.create_task(_pool_heartbeat_loop())

    yield

    logger.info("Shutting down live presence API")
    for task in (_db_retry_task, _sweeper_task, _pool_heartbeat_task):
        if task:
            task.cancel()
    await db_manager.disconnect()


def _register_error_handlers(app: FastAPI) -> None:
    """Errors go out as {"error": ...}; malformed requests are 400s."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="LiveLinks Presence API",
        description="Viewer presence, battle sessions and stream cleanup",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(presence_router.router)
    app.include_router(battle_router.router)
    app.include_router(cleanup_router.router)

    @app.get("/")
    async def root():
        return {"service": "livelinks-api", "status": "running"}

    # Liveness check, no external dependency
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time) if _start_time else 0,
        }

    @app.get("/status")
    async def status():
        """Readiness: includes an actual DB round trip"""
        db_manager = get_database_manager()
        db_ok = db_manager is not None and await db_manager.check_health()
        return {
            "service": "livelinks-api",
            "version": "1.0.0",
            "uptime_seconds": int(time.time() - _start_time) if _start_time else 0,
            "db_connected": db_ok,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app

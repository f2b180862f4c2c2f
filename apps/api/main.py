import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from apps.api.middlewares.metrics import MetricsMiddleware
from apps.api.routers import auth, calls, dev, health, matches, profiles, safety, threads
from apps.workers.missed_call_worker import MissedCallWorker
from core import close_redis, get_redis
from core.config import settings
from core.errors import DomainError
from services.container import Services, build_repository, build_services
from services.seed import seed_demo_profiles

logging.basicConfig(
    level=logging.DEBUG if settings.is_development else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    if getattr(app.state, "services", None) is None:
        repo = build_repository(settings)
        app.state.services = build_services(repo, await get_redis(), settings)
        if settings.storage_backend == "memory" and not settings.is_production:
            await seed_demo_profiles(repo)

    services: Services = app.state.services
    worker_task = None
    if settings.embedded_missed_call_worker:
        worker = MissedCallWorker(services.calls)
        worker_task = asyncio.create_task(worker.start())

    yield

    # Shutdown
    if worker_task:
        worker_task.cancel()
    await services.calls.shutdown()
    await close_redis()


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(
        title="Call-First Dating API",
        description="Matching, call scheduling and safety for a call-before-chat dating app",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # Middlewares
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(auth.router)
    app.include_router(profiles.router)
    app.include_router(matches.router)
    app.include_router(threads.router)
    app.include_router(calls.router)
    app.include_router(safety.router)
    app.include_router(dev.router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"status": "ok", "service": "call-first-dating"}

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()

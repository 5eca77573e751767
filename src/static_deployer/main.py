"""Main entry point for the static site deployer."""

import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest, make_asgi_app

from static_deployer import __version__
from static_deployer.api.deploy import init_orchestrator, router as deploy_router
from static_deployer.api.health import router as health_router
from static_deployer.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from static_deployer.core.config import Settings
from static_deployer.deploy.orchestrator import DeployOrchestrator
from static_deployer.ui.server import setup_public_routes
from static_deployer.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    orchestrator: DeployOrchestrator = app.state.orchestrator
    logger.info("Starting static deployer", version=__version__)

    state = await orchestrator.initialize(strict=settings.strict_persistence)
    init_orchestrator(orchestrator)
    logger.info(
        "Deploy orchestrator initialized",
        staging_dir=settings.staging_dir,
        quota_used=state.quotaUsed,
        last_deploy=state.lastDeployTimestamp,
    )

    yield

    logger.info("Shutting down static deployer")
    await orchestrator.scheduler.shutdown(flush=settings.flush_cleanup_on_shutdown)


def create_app(settings: Settings | None = None, orchestrator: DeployOrchestrator | None = None) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Static Deployer",
        version=__version__,
        description="Stages uploaded static sites under a daily deploy quota",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator or DeployOrchestrator.from_settings(settings)

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    origins = settings.cors_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health_router, tags=["runtime"])
    app.include_router(deploy_router, tags=["deploy"])

    if settings.metrics_enabled:
        # Exact route so the scrape path is not taken by the front-end catch-all
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    # Catch-all front-end route goes last
    if settings.public_dir:
        setup_public_routes(app, Path(settings.public_dir))

    return app


def run():
    """Run the application."""
    settings = Settings()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    config = uvicorn.Config(
        "static_deployer.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()

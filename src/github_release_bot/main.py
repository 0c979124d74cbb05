"""
Main application entry point for the GitHub release bot.

This module sets up the FastAPI application, configures logging, wires the
poll cycle to its collaborators and starts the release poller.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .exceptions import PersistenceError
from .github_client import GitHubReleaseClient
from .polling import PollCycle, PollingMetrics, PollScheduler
from .storage import StorageFactory
from .telegram_notifier import TelegramNotifier
from .tracking import TrackingService


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Explicit settings; read from the environment at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        current_settings = settings or get_settings()
        setup_logging(current_settings)
        logger = structlog.get_logger()

        logger.info("Starting GitHub release bot")
        logger.info(
            "Configuration loaded",
            storage_backend=current_settings.storage_backend,
            polling_enabled=current_settings.polling_enabled,
            polling_interval_seconds=current_settings.polling_interval_seconds,
            max_concurrent_repos=current_settings.polling_concurrent_repos,
            github_token_configured=current_settings.has_github_token,
        )

        # Initialize services
        storage = await StorageFactory.create(current_settings.storage_config)
        release_client = GitHubReleaseClient(current_settings)
        notifier = TelegramNotifier.from_config(current_settings.telegram_config)
        metrics = PollingMetrics()
        cycle = PollCycle(
            repositories=storage.repositories,
            release_cache=storage.releases,
            subscriptions=storage.subscriptions,
            release_source=release_client,
            notifier=notifier,
            concurrency=current_settings.polling_concurrent_repos,
            metrics=metrics,
        )
        scheduler = PollScheduler(cycle, current_settings.polling_interval_seconds)

        # Store services in app state
        app.state.settings = current_settings
        app.state.storage = storage
        app.state.release_client = release_client
        app.state.metrics = metrics
        app.state.scheduler = scheduler
        app.state.tracking = TrackingService(
            storage.repositories, storage.subscriptions, storage.releases
        )

        if current_settings.polling_enabled:
            scheduler.start()

        try:
            yield
        finally:
            logger.info("Shutting down GitHub release bot")
            await scheduler.stop()
            await notifier.aclose()
            await storage.close()

    app = FastAPI(
        title="GitHub Release Bot",
        description="Telegram notifications for new GitHub releases",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "GitHub Release Bot", "version": __version__, "status": "active"}

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        """Health check endpoint."""
        healthy = await request.app.state.storage.health_check()
        return JSONResponse(
            {"status": "healthy" if healthy else "unhealthy"},
            status_code=200 if healthy else 503,
        )

    @app.get("/status")
    async def status(request: Request) -> dict[str, Any]:
        """Polling status and metrics."""
        state = request.app.state
        return {
            "polling": {
                "running": state.scheduler.is_running(),
                "cycle_in_progress": state.scheduler.is_cycle_in_progress(),
                "skipped_triggers": state.scheduler.skipped_triggers,
                "interval_seconds": state.scheduler.interval_seconds,
            },
            "rate_limit": state.release_client.get_rate_limit_info(),
            "metrics": state.metrics.get_summary(),
        }

    @app.post("/poll")
    async def poll(request: Request) -> JSONResponse:
        """Run a poll cycle now."""
        try:
            report = await request.app.state.scheduler.trigger()
        except PersistenceError as e:
            return JSONResponse({"status": "aborted", "error": str(e)}, status_code=503)

        if report is None:
            return JSONResponse(
                {"status": "skipped", "reason": "poll cycle already running"},
                status_code=409,
            )
        return JSONResponse({"status": "completed", "report": report.to_dict()})

    return app


app = create_app()


def main() -> None:
    """Main entry point."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    logger = structlog.get_logger()

    logger.info(
        "Starting server", host=settings.host, port=settings.port, debug=settings.debug
    )

    uvicorn.run(
        "github_release_bot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()

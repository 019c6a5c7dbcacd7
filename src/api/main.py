"""
FastAPI Application Main
Route-Layer über dem Enrichment Runner
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from src.core.config import Settings
from src.database.manager import DatabaseManager
from src.enrichment.runner import EnrichmentRunner
from src.monitoring.metrics import EnrichmentMetrics


def create_fastapi_app(
    settings: Settings,
    *,
    db_manager: Optional[DatabaseManager] = None,
    runner: Optional[EnrichmentRunner] = None,
    metrics: Optional[EnrichmentMetrics] = None,
) -> FastAPI:
    """Factory function to create the FastAPI app.

    Injizierte Abhängigkeiten (DB, Runner, Metrics) werden beim Shutdown nicht
    geschlossen; lokal erzeugte schon.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger(__name__)
        logger.info("Starting Transfer Enrichment API")

        app.state.metrics = metrics or EnrichmentMetrics()
        if not metrics and settings.enable_metrics:
            try:
                app.state.metrics.start_metrics_server(settings.metrics_port)
            except OSError:
                logger.exception("Failed to start Prometheus metrics server")

        app.state.db = db_manager
        if runner is None and app.state.db is None:
            app.state.db = DatabaseManager(settings)
            await app.state.db.initialize_async()

        app.state.runner = runner or EnrichmentRunner(
            settings, app.state.db, metrics=app.state.metrics
        )
        logger.info("Application startup complete")
        yield

        logger.info("Shutting down application")
        if runner is None:
            await app.state.runner.close()
        if db_manager is None and app.state.db is not None:
            await app.state.db.close()

    app = FastAPI(
        title="Transfer Enrichment API",
        description="Player-data enrichment for season transfer records",
        version="1.0.0",
        lifespan=lifespan,
    )

    cors_origins = settings.cors_origins
    if settings.environment != "development":
        cors_origins = [o for o in cors_origins if o != "*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time-Ms"] = f"{(time.time() - start) * 1000:.1f}"
        return response

    @app.get("/health")
    async def health_check(request: Request):
        """Basic health check endpoint"""
        db = getattr(request.app.state, "db", None)
        database = (await db.health_check()).get("async_pool") if db is not None else "n/a"
        return {"status": "healthy", "database": database, "timestamp": datetime.now().isoformat()}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics(request: Request):
        return PlainTextResponse(request.app.state.metrics.export_metrics().decode("utf-8"))

    from src.api.router import api_router

    app.include_router(api_router, prefix="/api/v1")

    return app


def create_app() -> FastAPI:
    """ASGI factory for uvicorn (``uvicorn src.api.main:create_app --factory``)."""
    return create_fastapi_app(Settings())

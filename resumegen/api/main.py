"""
FastAPI application for resumegen.

Serves the resume job endpoints and a health check. The job service is
created on startup; if the broker is down the app still starts, with
the no-op publisher installed (visible in /health).
"""

import asyncio
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resumegen import __version__
from resumegen.config import config
from resumegen.jobs.service import GenerationJobService, close_service, get_service
from resumegen.queue.connection import broker_health_check
from resumegen.queue.publisher import NoOpPublisher
from resumegen.routes.jobs import router as jobs_router
from resumegen.utils.logging import api_logger as logger, configure_logging, get_log_buffer


def create_app(service: Optional[GenerationJobService] = None) -> FastAPI:
    """
    Build the app.

    Args:
        service: Pre-built job service. When given, startup/shutdown leave
            its lifecycle to the caller.
    """
    app = FastAPI(
        title="resumegen API",
        description="Asynchronous resume generation jobs",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.job_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if config.DEV_MODE else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs_router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check. Always 200; degraded mode is reported, not failed."""
        job_service = request.app.state.job_service
        degraded = job_service is None or isinstance(job_service.publisher, NoOpPublisher)
        return {
            "status": "degraded" if degraded else "healthy",
            "version": __version__,
            "job_service": job_service is not None,
            "publisher": type(job_service.publisher).__name__ if job_service else None,
            "logs": get_log_buffer().get_stats(),
        }

    @app.get("/health/broker")
    async def broker_health():
        """Broker connectivity and queue depth."""
        return await asyncio.to_thread(broker_health_check)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error("Unhandled error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    @app.on_event("startup")
    async def startup_event():
        """Create the job service unless one was injected."""
        configure_logging(config.LOG_LEVEL)
        if app.state.job_service is None:
            app.state.job_service = await get_service()
            app.state.owns_job_service = True
        logger.info(
            "resumegen API started",
            environment=config.ENVIRONMENT,
            store=config.JOB_STORE_BACKEND,
            broker=config.broker_configured
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the job service's channel, connections and store."""
        if getattr(app.state, "owns_job_service", False):
            await close_service()
            app.state.job_service = None
        logger.info("resumegen API stopped")

    return app


app = create_app()

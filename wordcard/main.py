"""
WordCard - replica server

Main entry point: logging setup, FastAPI application factory and the
uvicorn runner.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wordcard.api.routes import create_router
from wordcard.core.config import WordCardConfig
from wordcard.core.kernel import WordCardKernel


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
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
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def create_app(
    config: Optional[WordCardConfig] = None,
    *,
    kernel: Optional[WordCardKernel] = None,
) -> FastAPI:
    """
    Create and configure the WordCard FastAPI application.

    Args:
        config: Configuration; loaded from the environment when omitted
        kernel: Pre-built kernel, mainly for tests
    """
    config = config or (kernel.config if kernel else WordCardConfig())
    setup_logging(config.monitoring.log_level.value, config.monitoring.log_format)
    kernel = kernel or WordCardKernel(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app.starting", instance_id=kernel.instance_id)
        await kernel.initialize()
        logger.info("app.ready", status=await kernel.get_status())

        yield

        logger.info("app.shutting_down")
        await kernel.shutdown()

    app = FastAPI(
        title="WordCard Replica",
        description="Live updates, sync status and maintenance for one card replica.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.kernel = kernel

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(create_router(kernel))
    return app


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    config: Optional[WordCardConfig] = None,
) -> None:
    """
    Run the replica server.

    Args:
        host: Host to bind to (defaults to the configured host)
        port: Port to bind to (defaults to the configured port)
        config: Configuration; loaded from the environment when omitted
    """
    config = config or WordCardConfig()
    if host:
        config.host = host
    if port:
        config.port = port

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.monitoring.log_level.value.lower(),
    )


if __name__ == "__main__":
    run_server()

"""
Aba Directory - Main Entry Point

Business directory API for the markets of Aba.
"""

import logging
import sys

import structlog
import uvicorn

from src.config import get_settings

_settings = get_settings()

logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=getattr(logging, _settings.log_level),
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

from src.api.main import app  # noqa: E402


def main():
    """Main entry point for running the application."""
    settings = get_settings()

    logger.info(
        "starting_server",
        host=settings.api_host,
        port=settings.api_port,
        environment=settings.app_env,
    )

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

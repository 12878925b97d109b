"""Command-line entry point: run the exporter or probe a running one"""

import argparse
import logging
import sys

import httpx
import uvicorn

from zaim_exporter.config import Settings, settings
from zaim_exporter.infrastructure.observability.logging import setup_logging

logger = logging.getLogger("zaim_exporter")


def run_health_check(app_settings: Settings) -> int:
    """GET /health on the local instance; 0 when healthy"""
    url = f"http://localhost:{app_settings.port}/health"
    try:
        response = httpx.get(url, timeout=5.0)
    except httpx.HTTPError as e:
        logger.error(f"Health check failed: {e}")
        return 1

    if response.status_code != 200:
        logger.error("Health check failed", extra={"status": response.status_code})
        return 1

    logger.info("Health check passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="zaim-exporter", description="Zaim Prometheus exporter")
    parser.add_argument("--health", action="store_true", help="Run health check and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level, debug=args.debug, service_name=settings.service_name)

    if args.health:
        return run_health_check(settings)

    try:
        settings.ensure_oauth_configured()
    except ValueError as e:
        logger.critical(str(e))
        return 1

    logger.info("Starting server", extra={"port": settings.port})
    uvicorn.run(
        "zaim_exporter.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )
    logger.info("Server exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())

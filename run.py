#!/usr/bin/env python3
"""
Dealer Finance Entry Point

Starts the FastAPI server with the configured storage backend.
"""

import sys

import uvicorn

from dealer_finance.config import get_config
from dealer_finance.logging_config import setup_logging


def run_server(host: str, port: int, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "dealer_finance.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    logger.info(
        "Starting Dealer Finance API on %s:%s (storage=%s)",
        config.api_host, config.api_port, config.storage_backend
    )

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down Dealer Finance API")
    except Exception as e:
        logger.error("Error starting server: %s", e)
        sys.exit(1)

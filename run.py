#!/usr/bin/env python3
"""
Pawnshop Backend Entry Point

Starts the FastAPI server with settings from PAWNSHOP_* environment variables.
"""

import sys

from pawnshop.api import run_server
from pawnshop.config import get_config
from pawnshop.logging_config import get_logger, setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format)
    logger = get_logger("pawnshop")
    logger.info(f"Starting pawnshop backend on {config.api_host}:{config.api_port}")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("Shutting down pawnshop backend")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)

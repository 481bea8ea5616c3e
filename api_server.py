#!/usr/bin/env python
"""
Server entry point for Listing Wizard
Runs the FastAPI app with uvicorn
"""
import logging
import os
import sys

# Add src to Python path when running from a checkout without installing
src_path = os.path.join(os.path.dirname(__file__), "src")
if os.path.exists(src_path) and src_path not in sys.path:
    sys.path.insert(0, src_path)

from listing_wizard.app import app  # noqa: E402
from listing_wizard.config import config  # noqa: E402

logger = logging.getLogger(__name__)


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 50)
    logger.info("Listing Wizard API - Starting Up")
    logger.info("=" * 50)
    logger.info(f"Python version: {sys.version}")
    logger.info(f"ENV: {config.ENV}")
    logger.info(f"STORE_BACKEND: {config.STORE_BACKEND}")
    logger.info(f"AI model: {config.LLM_MODEL}")
    logger.info(f"Browser rendering: {'configured' if config.browser_configured else 'NOT CONFIGURED'}")
    logger.info(f"Health check endpoint: http://0.0.0.0:{config.PORT}/health")
    logger.info("=" * 50)

    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            log_config=None,
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)

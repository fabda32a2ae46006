"""Serverless entrypoint exposing the curator FastAPI app."""

import logging

from curator.core.config import get_settings
from curator.main import app

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

logger.info("Movie curator API loaded for %s", get_settings().site_url)

__all__ = ["app"]

#!/usr/bin/env python3
"""
kick-relay - Main Entry Point
Relays a live Twitch channel to Kick through ffmpeg and serves the operator API.
"""

import uvicorn
import logging
import sys
import os

# Add the src directory to Python path so local modules in `src/` can be imported
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

# Import configs AFTER setting up the path
from config import settings, VERSION
from relay_manager import find_ffmpeg


def main():
    """Main function to start the kick-relay server."""

    # Configure logging
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger = logging.getLogger(__name__)
    logger.info("="*60)
    logger.info(
        f"⚡️ Starting kick-relay v{VERSION} on {settings.HOST}:{settings.PORT}")
    logger.info("="*60)
    logger.info(f"ℹ️  Log level set to: {settings.LOG_LEVEL}")
    logger.info(f"✅ Using ffmpeg binary: {find_ffmpeg()}")
    logger.info(f"✅ Relay destination: {settings.KICK_INGEST_URL}")

    if settings.RELOAD:
        logger.info("🔄 Auto-reload is enabled.")

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()

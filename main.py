"""
Sync Run Service Main Application Entry Point
"""
import sys

import uvicorn

# Initialize logging first
from syncrun.system.logging_config import setup_logging, get_logger

# Setup logging before importing other modules
setup_logging()

from syncrun.config.settings import settings
from syncrun.database.connection import db_manager

logger = get_logger(__name__, service_name="main")


def main():
    """Main application entry point"""
    logger.info(f"Starting {settings.app.app_name} v{settings.app.app_version}")

    if not settings.sync_controller.syncctl_url:
        logger.warning("env SYNCCTL_URL is not set. Sync Controller is required to run sources")

    if "--create-tables" in sys.argv:
        db_manager.create_tables()
        return True

    uvicorn.run(
        "syncrun.app:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app.debug,
        log_level=settings.app.log_level.lower()
    )
    return True


if __name__ == "__main__":
    success = main()
    if not success:
        sys.exit(1)

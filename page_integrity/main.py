"""Application entry point for the page integrity API server."""

import uvicorn

from page_integrity.api.app import app
from page_integrity.utils.config import load_config
from page_integrity.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the FastAPI application server on the configured address."""
    config = load_config()
    setup_logging(config.log_level, config.log_file)
    logger.info(
        "Starting page integrity API on %s:%d (approval mode: %s)",
        config.server.host,
        config.server.port,
        config.approval.mode,
    )
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()

"""Run the server with uvicorn."""

import logging

import uvicorn

from campus_chat.core.config import Settings
from campus_chat.core.logging_config import setup_logging
from campus_chat.main import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    settings = Settings()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    logger.info(f"Starting campus chat server on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

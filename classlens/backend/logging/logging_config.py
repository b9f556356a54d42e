import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..config.config import settings


def setup_logging():
    """
    Installs the application-wide logging configuration.

    Logs go both to stdout (for development and container logs) and to a file
    that rotates once it reaches a fixed size (for production).
    """
    # Time - module name - level - message
    log_format = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(settings.LOG_LEVEL.upper())

    # Drop handlers installed by uvicorn and friends so one format wins.
    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(stdout_handler)

    # Rolls over to classlens.log.1, classlens.log.2 ... after 5MB.
    file_handler = RotatingFileHandler(
        log_dir / "classlens.log",
        maxBytes=5*1024*1024,  # 5 MB
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(file_handler)

    # httpx logs every request line at INFO; recognition calls are logged by the client itself.
    logging.getLogger("httpx").setLevel(logging.WARNING)

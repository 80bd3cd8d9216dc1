from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .config import settings


_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Logger writing to the console and to a rotating file under `settings.log_dir`."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(settings.log_level.upper())
    formatter = logging.Formatter(_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_dir / "parkshare.log", maxBytes=10_000_000, backupCount=5, encoding="utf-8"
        )
    except OSError as e:
        # Read-only working directory (e.g. hosted Streamlit): console only.
        logger.warning("File logging disabled: %s", e)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

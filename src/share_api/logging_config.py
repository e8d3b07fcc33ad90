# src/share_api/logging_config.py

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configures the root logger for the application.
    This function should be called once at startup by the CLI or `__main__`.
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)

"""
Console logging setup shared by the API and its modules.
"""
import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(module)s: %(message)s'


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """Attach one console handler to the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_linguaquest", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        handler._linguaquest = True
        root.addHandler(handler)

    logger = logging.getLogger("linguaquest")
    logger.debug(f"Logging initialized: level={log_level}")
    return logger

"""
Logging setup.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def configure_logging(log_file: Optional[str] = None, debug: bool = False) -> None:
    """
    Route loguru output to stderr and, optionally, a rotating file.

    Args:
        log_file: Path of the log file (no file sink if None)
        debug: Log DEBUG and above instead of INFO and above
    """
    level = "DEBUG" if debug else "INFO"
    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            rotation="10 MB",
            retention=10,
            compression="gz",
            enqueue=True,
        )

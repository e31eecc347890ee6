#!/usr/bin/env python3
"""
Logging setup (loguru).

Library modules log through `from loguru import logger` and never configure
sinks. Entry points call setup_logging() once.
"""
import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None,
                  rotation: str = "1 day", retention: str = "30 days") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            sink=os.path.join(log_dir, "{time:YYYY-MM-DD}.log"),
            rotation=rotation,
            retention=retention,
            level=level,
            format=LOG_FORMAT,
            backtrace=True,
            diagnose=False,
        )
    logger.debug("logging configured: level={} log_dir={}", level, log_dir)

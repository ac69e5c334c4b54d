import logging
import os
import sys
from typing import Any, Optional

import structlog


def configure_logger(json_logs: Optional[bool] = None, level: int = logging.INFO, log_file: Optional[str] = None):
    """
    Configures structlog to output either JSON or pretty console logs
    based on the LOG_FORMAT environment variable.
    """
    if json_logs is None:
        json_logs = os.getenv("LOG_FORMAT", "console").lower() == "json"

    root_log = logging.getLogger()
    root_log.setLevel(level)

    formatter = logging.Formatter('%(message)s')

    # Console: WARNING and up when a file takes the full trace
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(max(level, logging.WARNING) if log_file else level)
    console_handler.setFormatter(formatter)
    root_log.addHandler(console_handler)

    # File: full technical trace
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_log.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> Any:
    return structlog.get_logger(name)

"""
Logging setup shared by the service entrypoints
"""

import json
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

ROOT_LOGGER_NAME = "print_dispatch"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name: str) -> logging.Logger:
    """Child logger under the shared print_dispatch parent"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(log_file: str = "print_dispatch.log", log_dir: str = None,
                      level=logging.INFO) -> logging.Logger:
    """Attach rotating file + console handlers to the parent logger (once)"""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    log_dir = log_dir or os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=10*1024*1024,
        backupCount=5
    )
    console_handler = logging.StreamHandler()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger


class EventLogger:
    """Structured logging for dispatch and queue lifecycle events"""

    def __init__(self, name="events"):
        self.logger = get_logger(name)

    def log_event(self, event_type, data, level="info"):
        """Log structured event"""
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'event': event_type,
            'data': data
        }

        log_func = getattr(self.logger, level)
        log_func(json.dumps(log_entry, default=str))

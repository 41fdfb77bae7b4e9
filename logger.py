import logging
from logging.handlers import RotatingFileHandler
import json
import os
from datetime import datetime
from typing import Dict, Any, Optional
from config import LOGGING_CONFIG


def setup_logger(log_file: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """Configure and return the application logger with a rotating file handler.

    Module loggers (``logging.getLogger(__name__)``) propagate to the root
    logger, which gets the same handlers. Calling this twice is harmless.
    """
    logger = logging.getLogger(LOGGING_CONFIG['logger_name'])
    root = logging.getLogger()
    if getattr(root, '_sniper_configured', False):
        return logger

    log_file = log_file or LOGGING_CONFIG['message_log_file']
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOGGING_CONFIG['max_log_size_mb'] * 1024 * 1024,
        backupCount=LOGGING_CONFIG['backup_count']
    )
    console_handler = logging.StreamHandler()

    file_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    console_handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s', datefmt='%H:%M:%S'))

    root.setLevel(level or LOGGING_CONFIG['level'])
    root.addHandler(file_handler)
    root.addHandler(console_handler)
    root._sniper_configured = True

    return logger


def log_message(logger: logging.Logger, message_type: str, data: Dict[str, Any], console_output: bool = False) -> None:
    """Log a structured event as one JSON line

    Args:
        logger: The logger instance to use
        message_type: Event type, e.g. NEW_POOL, TRADE_EXECUTED
        data: Event payload; non-JSON values are stringified
        console_output: Also pretty-print the event to stdout
    """
    timestamp = datetime.now().isoformat()
    log_entry = {
        'timestamp': timestamp,
        'type': message_type,
        'data': data
    }

    logger.info(json.dumps(log_entry, default=str))

    if console_output:
        print(f"[{timestamp}] {message_type}: {json.dumps(data, indent=2, default=str)}")

"""
Logging setup for the token market.

The application log goes to stdout and, optionally, to a rotating file.
Order and trade events also go to a separate audit trail of
pipe-delimited lines (``ORDER_SUBMIT|ID:...|TOKEN:...``) that is kept
out of the application log.
"""

import logging
import logging.handlers
import os
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

AUDIT_LOGGER_NAME = "tokenmarket.audit"

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
AUDIT_FORMAT = '%(asctime)s|%(levelname)s|%(message)s'

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ('websockets', 'asyncio', 'werkzeug')

ORDER_AUDIT_FIELDS: Sequence[Tuple[str, str]] = (
    ('ID', 'order_id'),
    ('TOKEN', 'token_id'),
    ('USER', 'user_id'),
    ('SIDE', 'side'),
    ('QTY', 'quantity'),
    ('PRICE', 'price'),
    ('STATUS', 'status'),
)

TRADE_AUDIT_FIELDS: Sequence[Tuple[str, str]] = (
    ('ID', 'trade_id'),
    ('TOKEN', 'token_id'),
    ('QTY', 'quantity'),
    ('PRICE', 'price'),
    ('BUYER', 'buyer_id'),
    ('SELLER', 'seller_id'),
    ('REF', 'settlement_ref'),
)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Configure the root logger for the market server.

    Replaces any handlers already on the root logger, so calling it
    twice does not duplicate output.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of the rotating log file; console only when omitted
        max_file_size: Size in bytes at which the file is rotated
        backup_count: Number of rotated files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = _rotating_handler(
            log_file,
            max_file_size,
            backup_count,
            logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'),
        )
        file_handler.setLevel(numeric_level)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging initialized - Level: {level}, File: {log_file or 'Console only'}"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _rotating_handler(
    path: str,
    max_bytes: int,
    backup_count: int,
    formatter: logging.Formatter,
) -> logging.handlers.RotatingFileHandler:
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(formatter)
    return handler


def create_audit_logger(log_file: str = "logs/audit.log") -> logging.Logger:
    """
    Create the audit trail logger, writing to its own rotating file.

    Calling it again points the trail at the new file instead of adding
    a second handler.

    Args:
        log_file: Path to audit log file

    Returns:
        Audit logger instance
    """
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    audit_logger.addHandler(
        _rotating_handler(
            log_file,
            50 * 1024 * 1024,  # 50MB
            10,
            logging.Formatter(AUDIT_FORMAT),
        )
    )
    return audit_logger


def _audit_line(event: str, fields: Sequence[Tuple[str, str]], data: Dict[str, Any]) -> str:
    parts = [event]
    parts.extend(f"{label}:{data.get(key, 'N/A')}" for label, key in fields)
    return "|".join(parts)


def log_order_audit(audit_logger: logging.Logger, action: str, order_data: dict) -> None:
    """
    Write an order event (SUBMIT, FILL or CANCEL) to the audit trail.

    Args:
        audit_logger: Audit logger instance
        action: Event name; written as ORDER_<action>
        order_data: Order.to_dict() output
    """
    audit_logger.info(_audit_line(f"ORDER_{action}", ORDER_AUDIT_FIELDS, order_data))


def log_trade_audit(audit_logger: logging.Logger, trade_data: dict) -> None:
    """Write a trade execution to the audit trail."""
    audit_logger.info(_audit_line("TRADE_EXECUTE", TRADE_AUDIT_FIELDS, trade_data))

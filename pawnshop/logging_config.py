"""
Structured Logging Configuration Module

Every state change in the shop (loan created, payment applied, voucher
closed, ledger rebuilt...) is logged through ``log_action`` with the staff
member, the action name and the affected record, so the output can be
filtered per loan or per cashier.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes log_action attaches to a record
ACTION_FIELDS = ("user_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in ACTION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "pawnshop",
                  fmt: str = "json") -> logging.Logger:
    """
    Attach a single stderr handler to the application logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        logger_name: Application logger; managers log under ``pawnshop.<area>``
        fmt: "json" for structured output, "text" for plain lines

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling setup twice must not double every line
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = "pawnshop") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a state change with structured fields.

    Args:
        logger: Area logger, e.g. ``pawnshop.payments``
        level: info, warning, error...
        message: Human readable summary
        user_id: Staff member (X-User-Id) behind the change
        action: Machine readable action name, e.g. ``payment_applied``
        resource: Loan, voucher or customer id
        extra: Amounts and other details
    """
    levelno = logging.getLevelName(level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    fields = {'user_id': user_id, 'action': action, 'resource': resource, 'extra': extra}
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)

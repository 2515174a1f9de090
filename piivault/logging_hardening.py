"""Logging Hardening and Redaction.

This module provides filters to prevent PII (emails, phone numbers,
tokens, IPs, names, credential fields) from appearing in application logs.
"""
import logging
from typing import Optional

from piivault.domain.privacy.redaction import LogRedactor


class PIIRedactionFilter(logging.Filter):
    """Filter that redacts PII from log records."""

    def __init__(self, redactor: Optional[LogRedactor] = None):
        super().__init__()
        self.redactor = redactor or LogRedactor()

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.redactor.redact(record.msg)

        # Also redact arguments if they are strings
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                self.redactor.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        elif isinstance(record.args, dict):
            record.args = self.redactor.redact_mapping(record.args)

        return True


def setup_logging_redaction(redactor: Optional[LogRedactor] = None) -> PIIRedactionFilter:
    """Apply the PIIRedactionFilter to the root logger and all existing loggers."""
    redact_filter = PIIRedactionFilter(redactor)

    root_logger = logging.getLogger()
    for f in root_logger.filters[:]:
        if isinstance(f, PIIRedactionFilter):
            root_logger.removeFilter(f)
    root_logger.addFilter(redact_filter)

    # Filters on a logger do not apply to records propagated from children
    for handler in root_logger.handlers:
        for f in handler.filters[:]:
            if isinstance(f, PIIRedactionFilter):
                handler.removeFilter(f)
        handler.addFilter(redact_filter)

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        for f in logger.filters[:]:
            if isinstance(f, PIIRedactionFilter):
                logger.removeFilter(f)
        logger.addFilter(redact_filter)

    logging.info("Logging redaction filters active.")
    return redact_filter


def configure_logging(level: Optional[str] = None) -> PIIRedactionFilter:
    """Configure root logging and install PII redaction."""
    from piivault.settings import settings

    log_level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))
    return setup_logging_redaction()

"""Centralized logging configuration for the notion-tui application.

Sets up standard Python logging with a console handler and an optional file
handler. Every handler carries a SecretRedactingFilter so integration tokens
never reach log output, whichever module logged them.
"""

import logging
import re
import sys
from typing import Iterable, Optional, Set

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = None

REDACTED = "***"
# Notion integration tokens: legacy "secret_..." and current "ntn_..."
TOKEN_PATTERN = re.compile(r"\b(?:secret|ntn)_[A-Za-z0-9]{8,}")


class SecretRedactingFilter(logging.Filter):
    """Masks Notion tokens and explicitly registered secrets in log records."""

    def __init__(self, secrets: Optional[Iterable[str]] = None):
        super().__init__()
        self._secrets: Set[str] = set()
        for secret in secrets or ():
            self.add_secret(secret)

    def add_secret(self, secret: Optional[str]) -> None:
        if secret:
            self._secrets.add(secret)

    def redact(self, text: str) -> str:
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, REDACTED)
        return TOKEN_PATTERN.sub(REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        if record.exc_info and not record.exc_text:
            # Render the traceback now so the formatter reuses the redacted text
            record.exc_text = self.redact(logging.Formatter().formatException(record.exc_info))
        elif record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = DEFAULT_LOG_FILE,
    secrets: Optional[Iterable[str]] = None,
) -> SecretRedactingFilter:
    """Configures the root logger for the application.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG, logging.INFO).
        log_format: The format string for log messages.
        log_file: Optional path to a file for logging output.
        secrets: Values that must be masked wherever they appear.

    Returns:
        The redaction filter attached to the handlers, so callers can
        register secrets discovered later (e.g. a token read from config).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers attached to the root logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)
    redactor = SecretRedactingFilter(secrets)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redactor)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(redactor)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    logging.debug(f"Logging configured. Level={logging.getLevelName(log_level)}")
    return redactor

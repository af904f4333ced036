import logging
import sys
import os
import re
from logging.handlers import RotatingFileHandler
from typing import List

from financeai.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DIR = "logs"

# Secrets and PII that must never reach log sinks (keep in step with LLMService._pii_patterns)
REDACTION_PATTERNS = {
    'TOKEN': re.compile(r'(?i)bearer\s+[A-Za-z0-9\-_.=]+'),
    'JWT': re.compile(r'eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+'),
    'API_KEY': re.compile(r'(?i)(?<=key=)[A-Za-z0-9\-_]{16,}'),
    'EMAIL': re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
    'CARD': re.compile(r'\b(?:\d[ -]?){13,19}\b'),
}

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "python_multipart")


class RedactingFormatter(logging.Formatter):
    """Applies REDACTION_PATTERNS to the fully formatted record, traceback included."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for label, pattern in REDACTION_PATTERNS.items():
            message = pattern.sub(f'<{label}>', message)
        return message


def _build_handlers(environment: str) -> List[logging.Handler]:
    formatter = RedactingFormatter(LOG_FORMAT)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(formatter)
    handlers: List[logging.Handler] = [stream]

    # Hosted targets have a read-only filesystem
    if environment == "local":
        os.makedirs(LOG_DIR, exist_ok=True)
        rotating = RotatingFileHandler(os.path.join(LOG_DIR, "app.log"), maxBytes=5 * 1024 * 1024, backupCount=5)
        rotating.setFormatter(formatter)
        handlers.append(rotating)

    return handlers


def setup_logging(level: int = logging.INFO) -> None:
    settings = get_settings()

    # force=True drops handlers installed by uvicorn or an earlier call
    logging.basicConfig(level=level, handlers=_build_handlers(settings.ENVIRONMENT), force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

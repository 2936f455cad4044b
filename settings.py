"""
Application settings.

Values are read from environment variables once, at import time.
"""

import logging
import os
import sys


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./column_rules.db")

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

# Periodic (on_stay) action scheduler
SCHEDULER_TICK_SECONDS = int(os.getenv("SCHEDULER_TICK_SECONDS", "300"))
SCHEDULER_CLAIM_LEASE_SECONDS = int(os.getenv("SCHEDULER_CLAIM_LEASE_SECONDS", "900"))

# Messaging collaborator
EMAIL_API_URL = os.getenv("EMAIL_API_URL", "")
EMAIL_API_TOKEN = os.getenv("EMAIL_API_TOKEN", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@localhost")
COLLABORATOR_TIMEOUT_SECONDS = float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "10"))

# Score ledger defaults used when an update_score action has no explicit points
SCORE_DEFAULT_POINTS_ON_ENTER = int(os.getenv("SCORE_DEFAULT_POINTS_ON_ENTER", "10"))
SCORE_DEFAULT_POINTS_ON_STAY = int(os.getenv("SCORE_DEFAULT_POINTS_ON_STAY", "1"))

TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))


_RESERVED_RECORD_ATTRS = set(logging.LogRecord(
    "", 0, "", 0, "", (), None
).__dict__.keys()) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Formatter that appends the `extra={...}` context to each line."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS
        }
        if not context:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        return f"{base} | {rendered}"


def _build_logger() -> logging.Logger:
    app_logger = logging.getLogger("column_rules")
    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ExtraFormatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        app_logger.addHandler(handler)
    app_logger.setLevel(LOG_LEVEL.upper())
    app_logger.propagate = False
    return app_logger


logger = _build_logger()

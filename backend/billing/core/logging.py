"""Logging configuration for the billing service"""
import logging
from typing import Optional

from billing.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that only matter when they warn
QUIET_LOGGERS = ("stripe", "urllib3", "httpx", "sqlalchemy.engine", "alembic")


def setup_logging(level: Optional[str] = None):
    """Configure root logging from LOG_LEVEL, or ``level`` when given"""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# Audit loggers: dispatch decisions, ledger mutations, admin access
webhook_logger = logging.getLogger("webhook")
ledger_logger = logging.getLogger("ledger")
admin_logger = logging.getLogger("admin")

"""
Logging Configuration
Loguru sinks for console, rotating file and audit output
"""

import os
import sys

from loguru import logger

from tenant_broker.config import Settings


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def _is_audit(record) -> bool:
    return "AUDIT" in record["extra"]


def configure_logging(settings: Settings) -> None:
    """
    Replace loguru's default handler with the application sinks.

    Audit records (logger.bind(AUDIT=True)) go to the console like any other
    record and, when enabled, to their own file as well.
    """
    logger.remove()  # Remove default handler
    logger.add(
        sys.stdout,
        colorize=True,
        format=LOG_FORMAT,
        level=settings.log_level
    )

    if not settings.log_to_file:
        return

    os.makedirs(settings.log_dir, exist_ok=True)
    logger.add(
        os.path.join(settings.log_dir, settings.log_file),
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        level=settings.log_level
    )

    if settings.enable_audit_log:
        logger.add(
            os.path.join(settings.log_dir, settings.audit_log_file),
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            level="INFO",
            filter=_is_audit
        )

"""
Logging configuration for the Intake Gateway
"""

import logging
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    from .config import settings

    log_level = level or settings.log_level

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logger = logging.getLogger("intake_gateway")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module

    Args:
        name: Name of the module

    Returns:
        Logger instance
    """
    if name.startswith("intake_gateway"):
        return logging.getLogger(name)
    return logging.getLogger(f"intake_gateway.{name}")


def mask_phone(phone: Optional[str]) -> str:
    """Mask a phone number for logs, keeping the last 4 digits"""
    if not phone:
        return "<none>"
    return f"***{phone[-4:]}"

"""
Secure Origin Logging
=====================
Structured logging setup shared by the sidecar, the gate and the rotation jobs.

Secret values must never be logged. Use mask_secret() when a log line needs to
correlate a value across components.

Usage:
    from secure_origin.logging import configure_logging

    configure_logging(service_name="secure-origin-sidecar")
"""

import hashlib
import logging
import sys
from typing import Optional

import structlog


def mask_secret(value: Optional[str]) -> str:
    """
    Return a short, non-reversible fingerprint of a secret.

    Args:
        value: The secret value (may be empty)

    Returns:
        "sha256:<first 8 hex chars>" or "<empty>"
    """
    if not value:
        return "<empty>"
    digest = hashlib.sha256(value.encode()).hexdigest()
    return f"sha256:{digest[:8]}"


def configure_logging(
    service_name: str = "secure-origin",
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        service_name: Bound to every log line as "service"
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console renderer otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).info(
        "logging_configured", level=level.upper(), json_output=json_output
    )

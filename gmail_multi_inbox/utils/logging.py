"""
Structured logging configuration for the Gmail multi-inbox MCP server.

Logs are written to stderr: the stdio transport owns stdout for protocol
messages.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog


def configure_logging(
    service_name: str = "gmail-multi-inbox-mcp",
    log_level: str = "INFO",
    enable_json: bool = False
) -> None:
    """
    Configure structured logging for the server.

    Args:
        service_name: Name of the service for log identification
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_json: Whether to use JSON output (True) or console output (False)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
        force=True
    )

    shared_processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if enable_json:
        final_processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Optional logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_config_change(
    operation: str,
    config_type: str,
    details: Dict[str, Any],
    logger: Optional[structlog.stdlib.BoundLogger] = None
) -> None:
    """Log configuration changes with consistent format."""
    if logger is None:
        logger = get_logger("config")

    logger.info(
        f"Configuration {operation}",
        extra={
            "data": {
                "config_type": config_type,
                "operation": operation,
                **details
            }
        }
    )


def log_external_api_call(
    service: str,
    endpoint: str,
    account_id: str,
    duration_ms: Optional[float] = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None
) -> None:
    """Log external API calls with consistent format."""
    if logger is None:
        logger = get_logger("external_api")

    logger.debug(
        f"External API call to {service}",
        extra={
            "data": {
                "service": service,
                "endpoint": endpoint,
                "account_id": account_id,
                "duration_ms": duration_ms,
            }
        }
    )

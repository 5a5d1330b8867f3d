"""Structured logging helper shared by every service module."""

from __future__ import annotations

import logging
from typing import Any


def structured_log(
    logger: logging.Logger,
    level: str,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry.

    The event name is passed as the log message. The JsonLogFormatter in
    logging_config.py reads it back via record.getMessage(), so it is not
    repeated in the extra fields.

    Usage:
        structured_log(logger, "info", "sync.run_started", run_tag="ab12", page_size=100)
    """
    log_method = getattr(logger, level.lower())
    log_method(event, extra=fields)

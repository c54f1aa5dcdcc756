"""
Structured logging helpers for the KPI pipeline.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def elapsed_ms(started: float) -> float:
    """Milliseconds since a ``time.monotonic()`` reading, rounded to 0.1 ms."""
    return round((time.monotonic() - started) * 1000.0, 1)

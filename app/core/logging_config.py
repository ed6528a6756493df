# app/core/logging_config.py
from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"

# Third-party loggers that are too chatty at INFO
_QUIET = ("apscheduler.executors.default", "apscheduler.scheduler")


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once, from LOG_LEVEL (default INFO).
    Named app loggers (app.request, app.errors, app.approvals, ...) propagate here.
    """
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
    root.setLevel(numeric)

    for noisy in _QUIET:
        logging.getLogger(noisy).setLevel(max(numeric, logging.WARNING))

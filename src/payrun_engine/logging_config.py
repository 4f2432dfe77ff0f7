"""Logging setup for the engine process."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the package logger.

    Safe to call more than once; only the first call installs the handler.
    """
    global _configured
    logger = logging.getLogger("payrun_engine")
    logger.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True


class RunLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the payroll run it belongs to."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        run_id = self.extra.get("run_id") if self.extra else None
        return f"[run {run_id}] {msg}", kwargs


def run_logger(logger: logging.Logger, run_id: object) -> RunLogAdapter:
    """Return an adapter that tags log lines with ``run_id``."""
    return RunLogAdapter(logger, {"run_id": str(run_id)})

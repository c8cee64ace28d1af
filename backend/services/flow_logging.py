"""Logging helpers for flow runs.

ContextLogger is the logger handed to node plugins. It prefixes every record
with its bound context (flow, node, execution) and can derive child loggers
with extra context.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


class ContextLogger(logging.LoggerAdapter):
    def __init__(self, logger: logging.Logger, context: dict[str, Any] | None = None):
        super().__init__(logger, dict(context or {}))

    @property
    def context(self) -> dict[str, Any]:
        return dict(self.extra or {})

    def child(self, **context: Any) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.context, **context})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        if not self.extra:
            return msg, kwargs
        prefix = " ".join(f"{key}={value}" for key, value in self.extra.items())
        return f"[{prefix}] {msg}", kwargs


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), context)

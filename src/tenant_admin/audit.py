from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO


class JsonAuditLogger:
    """Structured logger for audit and operational events.

    Every event is written as one JSON object per line. Context bound through
    :meth:`bind` (command name, run id, tenant id) is merged into each event.
    """

    def __init__(
        self,
        name: str = "tenant_admin",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.logger = logging.getLogger(name)
        # An explicit stream replaces whatever an earlier instance of the same name installed.
        if stream is not None:
            for existing in list(self.logger.handlers):
                self.logger.removeHandler(existing)
        if not self.logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.context: Dict[str, Any] = dict(context or {})

    def bind(self, **context: Any) -> "JsonAuditLogger":
        child = JsonAuditLogger.__new__(JsonAuditLogger)
        child.logger = self.logger
        child.context = {**self.context, **context}
        return child

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        fields = {**self.context, **kwargs}
        self.logger.log(level, message, extra={"extra": fields})

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update(extra)

        return json.dumps(payload, default=str)

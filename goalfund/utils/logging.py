from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, UTC
from typing import Optional

# Context variables for structured logging
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
session_id_var: ContextVar[str] = ContextVar("session_id", default="-")
goal_id_var: ContextVar[str] = ContextVar("goal_id", default="-")
profile_var: ContextVar[str] = ContextVar("profile", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.session_id = session_id_var.get()
        record.goal_id = goal_id_var.get()
        record.profile = profile_var.get()
        return True


class SimpleStructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")
        msg = record.getMessage()
        line = (
            f"{ts} level={record.levelname} logger={record.name} "
            f"request_id={getattr(record, 'request_id', '-')} session_id={getattr(record, 'session_id', '-')} "
            f"goal_id={getattr(record, 'goal_id', '-')} profile={getattr(record, 'profile', '-')} "
            f"msg={msg}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)

    # Replace handlers so repeated setup does not duplicate output
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(lvl)
    handler.addFilter(ContextFilter())
    handler.setFormatter(SimpleStructuredFormatter())

    root.addHandler(handler)


def set_log_context(
    *,
    request_id: Optional[str] = None,
    session_id: Optional[str] = None,
    goal_id: Optional[str] = None,
    profile: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_var.set(request_id)
    if session_id is not None:
        session_id_var.set(session_id)
    if goal_id is not None:
        goal_id_var.set(goal_id)
    if profile is not None:
        profile_var.set(profile)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

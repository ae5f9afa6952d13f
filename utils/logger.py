"""
Structured, async-safe logging setup.
Call setup_logging() once at startup in main.py.

Every record carries the monotonic ns clock and the name of the asyncio task
that emitted it (agent tasks are named: "sync", "ticker", "supervisor", ...).
"""

from __future__ import annotations
import asyncio
import logging
import sys
import time


class _LiveFormatter(logging.Formatter):
    """Adds monotonic nanosecond timestamp and asyncio task name to every record."""

    def format(self, record: logging.LogRecord) -> str:
        record.mono_ns = time.monotonic_ns()
        record.task = _current_task_name()
        return super().format(record)


def _current_task_name() -> str:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return "-"
    return task.get_name() if task is not None else "-"


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        _LiveFormatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s <%(task)s> | mono_ns=%(mono_ns)d | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(handler)
    # websockets logs every ping/pong at DEBUG
    logging.getLogger("websockets").setLevel(max(numeric, logging.INFO))

"""Structured logging.

Modules emit key/value events through ``get_logger(__name__)``::

    logger.info("fetch_succeeded", source="feed", attempt=2, response_ms=140)

``run_context`` binds a run id into contextvars so every event emitted while
a run is in progress (including from gathered fetch tasks) carries it.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.types import Processor


class _StderrProxy:
    """Resolves ``sys.stderr`` on every write.

    ``PrintLoggerFactory`` keeps the file it was given and loggers are cached
    on first use, so a stream swapped in later (click's CliRunner, pytest
    capture) would otherwise never see output.
    """

    def write(self, s: str) -> int:
        return sys.stderr.write(s)

    def flush(self) -> None:
        sys.stderr.flush()

    def isatty(self) -> bool:
        return sys.stderr.isatty()


_stderr: TextIO = _StderrProxy()  # type: ignore[assignment]


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """Configure structlog for the CLI.

    Args:
        verbose: Emit debug events (retry waits, cache evictions).
        json_logs: One JSON object per line instead of the console renderer.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer(colors=_stderr.isatty())]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """Bind ``run_id`` into the logging context for the duration of the block."""
    run_id = run_id or new_run_id()
    with structlog.contextvars.bound_contextvars(run_id=run_id):
        yield run_id


__all__ = ["configure_logging", "get_logger", "new_run_id", "run_context"]

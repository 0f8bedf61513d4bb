"""Structured logging for the indexer and watcher.

Every log line goes through structlog and is rendered by stdlib handlers,
one per configured output. Lines emitted inside a full reindex or an
incremental update carry that run's ``run_id`` so they can be grouped.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from coderag.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)

# First file destination of the active configuration, shown by the CLI on errors
_log_file_path: Path | None = None

_QUIET_LOGGERS = ("watchfiles.main", "watchfiles.watcher", "httpx", "httpcore")

_STREAMS = ("stderr", "stdout")


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Bind a run correlation id to the current context, generating one if needed."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def clear_run_id() -> None:
    _run_id.set(None)


def get_log_file_path() -> Path | None:
    return _log_file_path


def _inject_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    rid = _run_id.get()
    if rid is not None:
        event_dict.setdefault("run_id", rid)
    return event_dict


def _level_number(name: str | None, fallback: int = logging.INFO) -> int:
    if not name:
        return fallback
    name = name.upper()
    if name == "WARN":
        name = "WARNING"
    number = logging.getLevelName(name)
    return number if isinstance(number, int) else fallback


def _open_handler(destination: str) -> logging.Handler:
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


def _renderer(output: LogOutputConfig) -> structlog.types.Processor:
    if output.format == "json":
        return structlog.processors.JSONRenderer()
    stream = sys.stdout if output.destination == "stdout" else sys.stderr
    colors = output.destination in _STREAMS and stream.isatty()
    return structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install structlog and one root handler per output.

    Args:
        config: Full logging section. When omitted a single stderr output
            is built from ``json_format`` and ``level``.
        json_format: Render the default output as JSON lines.
        level: Level for the default output.
    """
    global _log_file_path
    from coderag.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )

    base_level = _level_number(config.level)
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _inject_run_id,  # type: ignore[list-item]
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(base_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(base_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _log_file_path = None
    for output in config.outputs:
        if output.destination not in _STREAMS and _log_file_path is None:
            _log_file_path = Path(output.destination)

        handler = _open_handler(output.destination)
        handler.setLevel(_level_number(output.level, base_level))
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(processor=_renderer(output), foreign_pre_chain=pre_chain)
        )
        root.addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a logger, tagged with ``logger=name`` when a name is given."""
    log = structlog.get_logger()
    return log.bind(logger=name) if name else log  # type: ignore[no-any-return]

# src/taskmaster/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "taskmaster.log"

# Loggers that run inside the orchestrator thread; every tick writes a summary.
BACKGROUND_LOGGERS = (
    "taskmaster.tasks.task_scheduler",
    "taskmaster.tasks.reconciler",
    "taskmaster.tasks.initiator",
    "taskmaster.tasks.sweeper",
)

# HTTP stack under the LLM client logs every request at INFO/DEBUG.
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def _under(name: str, prefixes: tuple[str, ...]) -> bool:
    return any(name == p or name.startswith(p + ".") for p in prefixes)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keeps the interactive prompt readable.

    taskmaster.* records pass, except the orchestrator's batch loggers, which
    only reach the console at WARNING+ (their INFO summaries go to the file).
    Everything else, including captured py.warnings, needs ERROR+.
    """

    def __init__(self, background: tuple[str, ...] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._background = background

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if _under(name, self._background):
            return record.levelno >= logging.WARNING
        if _under(name, ("taskmaster",)):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskmaster",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    quiet_loggers: tuple[str, ...] = QUIET_LOGGERS,
) -> Path:
    """
    Console handler on stderr (filtered) plus a full log file at
    <log_dir>/taskmaster.log. quiet_loggers are capped at WARNING at the
    logger itself so the file is not flooded with HTTP request lines.

    Call once, before the first log record. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    # warnings.warn(...) -> 'py.warnings'
    logging.captureWarnings(True)

    logging.getLogger(__name__).debug("Logging to %s", log_file)
    return log_file

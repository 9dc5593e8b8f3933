from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


@dataclass(frozen=True)
class RunOptions:
    """
    Limits applied to one interpreted run.

    max_loop_iterations bounds a single `while`/`for` loop; max_call_depth
    bounds nested user function calls; yield_delay is the pause (seconds)
    taken at every yield point so a host event loop can breathe.
    """

    max_loop_iterations: int = 1000
    max_call_depth: int = 64
    yield_delay: float = 0.0


DEFAULT_OPTIONS = RunOptions()


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "WARNING"
    fmt: str = "%(levelname)s | %(name)s | %(message)s"


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Install a stderr handler on the package logger. Only the CLI calls this."""
    config = config or LoggingConfig()
    level = _LEVEL_MAP.get(config.level.upper(), logging.WARNING)
    root = logging.getLogger("minic")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.fmt))
    root.addHandler(handler)

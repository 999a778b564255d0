"""Logging for cloudkeeper.

Every line a controller writes carries the identity of the resource it
manages, so the output of many controllers sharing one process can be
told apart. Controller operations bind it with with_identity(); lines
written outside any operation show IDENTITY_FALLBACK instead.

cloudkeeper is a library, so its loguru namespace is disabled until the
embedding process calls setup_logging().

Example:
    from cloudkeeper.logging import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig(level="DEBUG", file="cloudkeeper.log"))
    try:
        controller.reconcile()
    finally:
        teardown_logging(handlers)

    # 12:00:01.042 | INFO     | node1-data | Creating resource node1-data
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, Literal

from loguru import logger

logger.disable("cloudkeeper")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

IDENTITY_FALLBACK = "-"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[identity]}</magenta> | "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[identity]} | "
    "{name}:{function}:{line} - {message}"
)


def with_identity[**P, R](fn: Callable[P, R]) -> Callable[P, R]:
    """Bind ``self.identity`` to every log line written during the call."""

    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with logger.contextualize(identity=args[0].identity):  # type: ignore[attr-defined]
            return fn(*args, **kwargs)

    return wrapper


def identity_filter(record: dict[str, Any]) -> bool:
    """Keep cloudkeeper records and give unscoped ones the fallback identity."""
    name = record["name"] or ""
    if name != "cloudkeeper" and not name.startswith("cloudkeeper."):
        return False
    record["extra"].setdefault("identity", IDENTITY_FALLBACK)
    return True


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where cloudkeeper logs go.

    Attributes:
        level: Minimum console level. The file always gets DEBUG.
        file: Log file path; no file sink when None.
        console: Write to stderr.
        serialize: Write the file as JSON lines (loguru's record schema).
        rotation: Rotate the file at this size or interval, e.g. "50 MB".
        retention: Rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    serialize: bool = False
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig) -> list[int]:
    """Enable the cloudkeeper namespace and add sinks. Returns their handler ids."""
    logger.enable("cloudkeeper")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(
            sys.stderr,
            level=config.level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter=identity_filter,
        ))

    if config.file:
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            serialize=config.serialize,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            diagnose=False,
            enqueue=True,
            filter=identity_filter,
        ))

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    """Remove the sinks added by setup_logging and disable the namespace again."""
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("cloudkeeper")

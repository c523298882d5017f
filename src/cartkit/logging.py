"""Opt-in loguru output for tree fitting.

cartkit logs through loguru but stays silent until `enable_logging()` is
called. Growing, pruning and cross-validating a tree log at the custom `FIT`
level; individual folds log at DEBUG and rejected settings at WARNING.

Note:
    Importing cartkit drops loguru's stock stderr handler (ID 0) so that the
    handler added by `enable_logging()` is the only one printing cartkit
    records. Applications that set up their own loguru handlers should do so
    after importing cartkit.
"""

from __future__ import annotations

import contextlib
import sys
import threading
import warnings
from typing import TYPE_CHECKING, ClassVar, Final, Literal

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

with contextlib.suppress(ValueError):
    logger.remove(0)

# Above INFO so a FIT-level handler shows fitting milestones and hides fold detail.
FIT_LEVEL: Final[str] = "FIT"
FIT_LEVEL_NUMBER: Final[int] = 25

type LogLevel = Literal[
    "TRACE",
    "DEBUG",
    "INFO",
    "FIT",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

type LogFormat = Literal["short", "full"]

_RECORD_FORMATS: Final[dict[str, str]] = {
    "short": (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <7}</level> | "  # noqa: RUF027 - loguru format string
        "<cyan>{function}</cyan> - "
        "<level>{message}</level> {extra}"
    ),
    "full": (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <7}</level> | "  # noqa: RUF027 - loguru format string
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level> {extra}"
    ),
}


def _register_fit_level() -> None:
    """Add the FIT level to loguru unless it is already known.

    loguru cannot renumber an existing level, so a FIT level registered
    elsewhere with another number is kept and reported with a UserWarning.
    """
    try:
        existing_level = logger.level(FIT_LEVEL)
    except ValueError:
        logger.level(FIT_LEVEL, no=FIT_LEVEL_NUMBER, icon="🌳")
    else:
        if existing_level.no != FIT_LEVEL_NUMBER:
            msg = f"FIT level already registered with numeric value {existing_level.no}, expected {FIT_LEVEL_NUMBER}"
            warnings.warn(msg, stacklevel=2)


_register_fit_level()


class LoggingHandle:
    """One stderr handler added by `enable_logging`.

    Handles are counted across threads; cartkit goes quiet again when the last
    one is disabled.

    Examples:
        >>> with enable_logging():  # doctest: +SKIP
        ...     build_tree(data)

        >>> handle = enable_logging(level="DEBUG")  # doctest: +SKIP
        >>> cross_validate(data, folds=5)  # doctest: +SKIP
        >>> handle.disable()  # doctest: +SKIP
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        """Track a handler returned by `logger.add`.

        Args:
            handler_id (int): The loguru handler ID.
        """
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove this handle's handler; safe to call more than once.

        Disabling the last active handle also calls `logger.disable("cartkit")`.
        """
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        """Return how many handles are still enabled.

        Returns:
            int: Number of handles not yet disabled.
        """
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(
    *,
    level: LogLevel = FIT_LEVEL,
    log_format: LogFormat = "short",
) -> LoggingHandle:
    """Print cartkit records to stderr.

    Args:
        level (LogLevel): Minimum level printed. `"FIT"` (default) shows one
            record per tree built, pruning sequence and cross-validation run;
            `"DEBUG"` adds one record per fold.
        log_format (LogFormat): `"short"` prints the time and function name;
            `"full"` adds the date and module:function:line.

    Returns:
        LoggingHandle: Owner of the new handler. Disable it directly or use it
            as a context manager.

    Examples:
        >>> with enable_logging(level="DEBUG"):  # doctest: +SKIP
        ...     fit_pruned_tree(train, folds=10)
    """
    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(
        sys.stderr,
        level=level,
        filter=_is_cartkit_record,
        format=_RECORD_FORMATS[log_format],
    )
    return LoggingHandle(handler_id)


def _is_cartkit_record(record: Record) -> bool:
    """Return `True` for records emitted by cartkit modules.

    Args:
        record (Record): The loguru record.

    Returns:
        bool: Whether the record's module belongs to cartkit.
    """
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, Field, field_validator
from pyspark.sql import SparkSession
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme
from tqdm.auto import tqdm

_PACKAGE_LOGGER = "spark_canopy"

_console: Optional[Console] = None


def console() -> Console:
    """Return a shared Rich Console instance with basic theming."""
    global _console
    if _console is None:
        _console = Console(theme=Theme({"info": "cyan", "warn": "yellow", "error": "bold red"}))
    return _console


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Route ``spark_canopy`` log records through a single Rich handler."""
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level.upper())
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(console=console(), show_path=False))
    return logger


_DEFAULT_SPARK_LOGGERS: Sequence[str] = (
    "org.apache.spark.scheduler",  # Stage and task progress for the map/merge passes.
    "org.apache.spark.storage",  # Broadcast block storage.
    "org.apache.spark.shuffle",  # Tree-reduce shuffle details.
)


class LogEventRecord(BaseModel):
    label: str = Field(min_length=1)
    event: Optional[str] = None
    step: int = Field(ge=0)
    total: int = Field(ge=1)
    elapsed_seconds: float = Field(ge=0.0)
    total_elapsed_seconds: float = Field(ge=0.0)
    timestamp: float = Field(ge=0.0)

    @field_validator("label")
    @classmethod
    def _validate_label(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("label must be non-empty")
        return value

    @field_validator("event", mode="before")
    @classmethod
    def _normalize_event(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text.upper() or None


class LogEventWriter(Protocol):
    def write(self, event: LogEventRecord) -> None: ...


LogEventSink = Union[Callable[[LogEventRecord], None], LogEventWriter]
LogEventSinks = Union[LogEventSink, Sequence[LogEventSink]]


def create_progress_tracker(
    total_steps: int,
    *,
    event_sinks: Optional[LogEventSinks] = None,
) -> Dict[str, object]:
    """Return a tracker for a fixed number of fit stages."""
    tracker = {
        "current": 0,
        "total": float(total_steps),
        "start": time.perf_counter(),
        "last": None,
        "bar": None,
    }
    if event_sinks is not None:
        tracker["event_sinks"] = _normalize_event_sinks(event_sinks)
    return tracker


def _normalize_event_sinks(sinks: Optional[LogEventSinks]) -> Sequence[LogEventSink]:
    if sinks is None:
        return ()
    if isinstance(sinks, (list, tuple)):
        return list(sinks)
    return (sinks,)


def _emit_log_event(record: LogEventRecord, sinks: Sequence[LogEventSink]) -> None:
    for sink in sinks:
        if hasattr(sink, "write"):
            sink.write(record)
        elif callable(sink):
            sink(record)
        else:
            raise TypeError(f"Unsupported log event sink: {sink!r}")


def log_event(
    tracker: Dict[str, object],
    logger: Console,
    label: str,
    *,
    event: Optional[str] = None,
    advance: int = 1,
    sinks: Optional[LogEventSinks] = None,
) -> LogEventRecord:
    """Advance the tracker, emit a validated record to the sinks and update the bar."""

    now = time.perf_counter()
    last = tracker.get("last") or tracker["start"]
    current = int(tracker.get("current", 0)) + int(advance)
    total = int(tracker.get("total") or 1)
    elapsed = now - float(last)
    total_elapsed = now - float(tracker["start"])

    record = LogEventRecord(
        label=label,
        event=event,
        step=current,
        total=total,
        elapsed_seconds=elapsed,
        total_elapsed_seconds=total_elapsed,
        timestamp=time.time(),
    )

    event_sinks = _normalize_event_sinks(sinks if sinks is not None else tracker.get("event_sinks"))
    if event_sinks:
        _emit_log_event(record, event_sinks)

    tracker["current"] = current
    tracker["last"] = now

    bar = tracker.get("bar")
    if bar is None:
        bar = tqdm(total=total, file=logger.file, dynamic_ncols=True)
        tracker["bar"] = bar

    description = f"{record.event}: {label}" if record.event else label
    bar.set_description_str(description)
    bar.set_postfix_str(f"+{elapsed:.2f}s, total {total_elapsed:.2f}s")
    if advance:
        bar.update(int(advance))
    else:
        bar.refresh()

    if current >= total or record.event == "ERROR":
        bar.close()
        tracker["bar"] = None
    return record


def log_start(tracker: Dict[str, object], logger: Console, label: str, **kwargs) -> LogEventRecord:
    return log_event(tracker, logger, label, event="start", **kwargs)


def log_end(tracker: Dict[str, object], logger: Console, label: str, **kwargs) -> LogEventRecord:
    return log_event(tracker, logger, label, event="end", **kwargs)


def log_error(tracker: Dict[str, object], logger: Console, label: str, **kwargs) -> LogEventRecord:
    return log_event(tracker, logger, label, event="error", **kwargs)


def enable_spark_logging(
    spark: SparkSession,
    *,
    level: str = "INFO",
    categories: Optional[Iterable[str]] = None,
) -> None:
    """Raise Spark log verbosity so the canopy map and merge stages are visible.

    Sets the level through ``SparkContext.setLogLevel`` and, when a JVM gateway
    is available, directly on the Log4j loggers for ``categories`` (scheduler,
    storage and shuffle by default).
    """

    sc = spark.sparkContext
    sc.setLogLevel(level.upper())

    jvm = getattr(spark, "_jvm", None)
    if jvm is None:
        return

    log_manager = jvm.org.apache.log4j.LogManager
    log4j_level = jvm.org.apache.log4j.Level.toLevel(level.upper())

    for name in categories or _DEFAULT_SPARK_LOGGERS:
        logger = log_manager.getLogger(name)
        if logger is not None:
            logger.setLevel(log4j_level)

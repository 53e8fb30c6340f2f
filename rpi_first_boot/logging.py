from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "RPI_FIRST_BOOT_LOG_DIR",
        Path.home() / ".local" / "state" / "rpi-first-boot" / "logs",
    )
)

RUN_LOG_NAME = "configuration.log"


def _should_log_command_output(record) -> bool:
    """Keep raw command output out of user-facing sinks unless tracing."""
    tags = record["extra"].get("tags", [])

    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "command-output" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    run_log: Path | None = None,
) -> Logger:
    """
    Setup logging sinks for a provisioning run.

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)
    - run_log: plain INFO+ transcript of this run, normally written to the
      boot partition so it can be read from another machine

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/rpi-first-boot/logs)
        run_log: Path of the per-run transcript, or None to skip it
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_command_output,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <20} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <20} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    # SINK 5: Run transcript on the boot partition
    if run_log is not None:
        run_log.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            run_log,
            level="INFO",
            mode="w",
            filter=_should_log_command_output,
            format="{time:YYYY-MM-DD HH:mm:ss} {level: <8} {message}",
        )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["disk", "storage"])
        source: Source component (e.g., "disk", "config")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a provisioning phase with automatic timing.

    Logs phase start, completion and failure with duration tracking.

    Args:
        operation: Phase name (e.g., "disk", "system")
        **details: Phase-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("disk", device="mmcblk0") as log:
            log.debug("Inspecting partition table")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started")

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed",
                duration_seconds=round(duration, 2),
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the domain.
    """

    @staticmethod
    def for_config() -> Logger:
        """Logger for configuration resolution."""
        return logger.bind(source="config", tags=["config"])

    @staticmethod
    def for_disk(job_id: str | None = None) -> Logger:
        """Logger for partition table inspection and mutation."""
        if job_id is None:
            job_id = f"disk-{uuid.uuid4().hex[:8]}"
        return logger.bind(job_id=job_id, source="disk", tags=["disk", "storage"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for raw command output (hidden below TRACE on the console)."""
        return logger.bind(source="command", tags=["command-output"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for operating-system configuration and run orchestration."""
        return logger.bind(source="system", tags=["system"])

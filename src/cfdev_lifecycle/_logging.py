"""Centralized logging for cfdev-lifecycle.

Library logging conventions:
- Attach NullHandler to the library root logger
- Never add other handlers from library code -- that's the entry point's job
- Support CFDEV_LIFECYCLE_LOG_LEVEL env var for level control
- Provide configure_logging() for the CLI

CLI output format:
    WARNING [2026-02-25 10:02:54] cfdev_lifecycle.reaper - message
    INFO [2026-02-25 10:02:54] cfdev_lifecycle.sequencer (hypervisor-ready) - hypervisor-ready ready

Non-blocking logging:
    Uses QueueHandler + QueueListener (stdlib) to decouple log emission
    from stderr I/O.  Phases can run for twenty minutes while the control
    surface streams deploy output; a bounded FIFO queue absorbs those bursts
    and a daemon thread drains records to click.echo(err=True).  When the
    queue is full, records are dropped instead of stalling a poll loop, and
    the number dropped is reported when the handler closes.
"""

import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "cfdev_lifecycle"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

# Honor CFDEV_LIFECYCLE_LOG_LEVEL env var (e.g. "DEBUG", "WARNING", "ERROR")
_env_level = os.environ.get("CFDEV_LIFECYCLE_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s%(phase_tag)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 4096


class _PhaseFormatter(logging.Formatter):
    """Tag records logged with ``extra={"phase": ...}`` with their phase."""

    def format(self, record: logging.LogRecord) -> str:
        phase = getattr(record, "phase", None)
        record.phase_tag = f" ({phase})" if phase else ""
        return super().format(record)


class _ClickHandler(logging.Handler):
    """Target handler: writes to stderr via click.echo with dim styling.

    Runs on the QueueListener's daemon thread, never on the event loop.
    click.echo() strips ANSI codes when stderr is not a TTY.
    """

    def __init__(self) -> None:
        super().__init__()
        self.formatter = _PhaseFormatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            click.echo(click.style(msg, dim=True), err=True)
        except BlockingIOError:
            pass  # Stderr buffer full -- drop
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler that never blocks the caller.

    Records that don't fit the queue are counted in ``dropped`` and the
    total is reported once when the handler closes.
    """

    def __init__(self, capacity: int = _QUEUE_CAPACITY) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=capacity)
        super().__init__(q)
        self.dropped = 0
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Skip serialization -- same-process queue, no pickle needed."""
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def close(self) -> None:
        self._listener.stop()
        if self.dropped:
            click.echo(
                click.style(f"WARNING {self.dropped} log record(s) dropped during output bursts", dim=True),
                err=True,
            )
            self.dropped = 0
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Configure library logging for CLI entry points.

    Adds a _NonBlockingHandler if none exists (idempotent), then sets the
    log level.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides env var.
        quiet: If True, set level to ERROR. Takes precedence over level.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)

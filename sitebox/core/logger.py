"""Logging for sitebox: Rich output on the console, a plain run log on disk.

Every module logs through ``get_logger(__name__)``. Messages reach the console
at INFO and above. Once a command calls ``setup_file_logging`` the same
messages, plus DEBUG detail in verbose mode, are appended to the run log.
Entries written with ``run_log`` go to the file only.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Union

from rich.console import Console
from rich.logging import RichHandler

console = Console()

PACKAGE_LOGGER = "sitebox"
FALLBACK_LOG_FILE = Path("/tmp/sitebox.log")
FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SECRET_OPTIONS = frozenset({"dbpass"})
MASK = "******"

run_log = logging.getLogger(PACKAGE_LOGGER)


class RunLogHandler(logging.FileHandler):
    """File handler of the run log (one per process)."""


def _run_log_handlers() -> List[RunLogHandler]:
    return [h for h in run_log.handlers if isinstance(h, RunLogHandler)]


def _package_level() -> None:
    if run_log.level == logging.NOTSET:
        run_log.setLevel(logging.INFO)


def setup_file_logging(log_file: Union[str, Path], verbose: bool = False) -> Path:
    """Send sitebox log records to ``log_file``.

    Calling it again with the same path only updates the level; another path
    moves the run log there.

    Args:
        log_file: Run log path, usually ``SiteboxConfig.log_file``
        verbose: Record DEBUG entries as well

    Returns:
        The path written to, ``/tmp/sitebox.log`` when the log directory
        cannot be created
    """
    target = Path(log_file)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        target = FALLBACK_LOG_FILE

    level = logging.DEBUG if verbose else logging.INFO
    run_log.setLevel(level)

    for handler in _run_log_handlers():
        if Path(handler.baseFilename) == target.resolve():
            handler.setLevel(level)
            return target
        run_log.removeHandler(handler)
        handler.close()

    handler = RunLogHandler(target)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    run_log.addHandler(handler)
    return target


def redact_options(options: Mapping[str, Any]) -> dict:
    """Copy of command options with passwords masked."""
    return {
        key: (MASK if key in SECRET_OPTIONS and value else value)
        for key, value in options.items()
    }


@contextmanager
def log_section(title: str, options: Mapping[str, Any] = None) -> Iterator[None]:
    """Mark the start and end of a command in the run log."""
    run_log.info(f"{title} start")
    if options is not None:
        run_log.debug(f"{title} options: {redact_options(options)}")
    try:
        yield
    finally:
        run_log.info(f"{title} end")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with Rich console output.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger that prints INFO and above to the console and propagates to
        the run log
    """
    _package_level()
    logger = logging.getLogger(name)

    if logger is not run_log and not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger

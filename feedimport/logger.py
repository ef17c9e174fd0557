"""Console logging setup and the one-line messages for file operations."""

from __future__ import annotations

import logging

from rich.filesize import decimal
from rich.logging import RichHandler

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "feedimport"


def setup_logging(level: str = "INFO", quiet: bool = False) -> logging.Logger:
    """Attach a :class:`~rich.logging.RichHandler` to the package logger.

    *quiet* raises the threshold to WARNING so only problems are shown.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    numeric = logging.WARNING if quiet else _level_from_string(level)
    root.setLevel(numeric)
    root.handlers = []
    root.propagate = False

    handler = RichHandler(rich_tracebacks=True, show_time=False, show_level=True, markup=False)
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    return root


def _level_from_string(level: str) -> int:
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def plural(count: int, singular: str, plural_form: str | None = None) -> str:
    """``plural(1, "document")`` -> ``1 document``; ``plural(2, ...)`` -> ``2 documents``."""
    word = singular if count == 1 else (plural_form or f"{singular}s")
    return f"{count} {word}"


def format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}m {rest:.0f}s"


def log_fs_operation(
    action: str,
    kind: str,
    local_path: str,
    remote_url: str | None = None,
    *,
    size: int | None = None,
    dry_run: bool = False,
    reason: str | None = None,
) -> None:
    """Log a file write or skip.

    ``Importing post out/blog/hello.md (1.2 kB, dry run) from https://...``
    """
    details: list[str] = []
    if size is not None:
        details.append(decimal(size))
    if dry_run:
        details.append("dry run")
    if reason:
        details.append(reason)
    message = f"{action} {kind} {local_path}"
    if details:
        message += f" ({', '.join(details)})"
    if remote_url:
        message += f" from {remote_url}"
    logger.info(message)

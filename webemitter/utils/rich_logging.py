"""Rich logging integration for webemitter.

Provides the Rich console handler used for interactive output and a plain
formatter for log files.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class CorrelationRichHandler(RichHandler):
    """RichHandler that tags records with the current correlation ID.

    Peer addresses (``http://host:port``) are highlighted so fan-out and sync
    logs are easy to scan.
    """

    ADDRESS_PATTERN = re.compile(r"https?://[^\s,'\")\]]+")

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_colors: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize the handler.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_colors: Whether to colorize peer addresses
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stdout, markup=True, color_system="auto")
        self.show_colors = show_colors
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def _colorize_addresses(self, message: str) -> str:
        if not self.show_colors:
            return message
        return self.ADDRESS_PATTERN.sub(
            lambda m: f"[bright_cyan]{m.group(0)}[/bright_cyan]",
            message,
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record with correlation ID and address highlighting."""
        try:
            if not hasattr(record, "correlation_id"):
                from webemitter.utils.logging_config import correlation_id

                record.correlation_id = correlation_id.get() or "no-correlation-id"

            # Escape user-provided brackets before adding our own markup.
            message = record.getMessage().replace("[", r"\[")
            record.msg = self._colorize_addresses(message)
            record.args = ()
            super().emit(record)
        except Exception:
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        """Write logging failures straight to stderr to avoid recursion."""
        try:
            sys.stderr.write(
                f"Logging error: {record.levelname} {record.name}: {record.msg}\n"
            )
            sys.stderr.flush()
        except Exception:  # noqa: S110
            pass


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup tags like ``[red]`` or ``[/bold]`` from text."""
    return re.sub(r"(?<!\\)\[/?[a-z_#0-9 ]+\]", "", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_colors: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks
        show_colors: Whether to highlight peer addresses

    Returns:
        Configured handler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        show_colors=show_colors,
    )

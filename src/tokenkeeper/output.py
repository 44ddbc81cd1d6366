"""Console output for the tokenkeeper CLI.

Two streams, two purposes. Anything a script might capture (a token, a
header value, a status record, a profile table) is written to stdout, so
``export TOKEN=$(tokenkeeper token)`` never picks up noise. Everything
addressed to the human operator goes to stderr: notices, warnings, errors,
and the log records emitted by the renewal thread.

The rendering mode is fixed once per invocation by
:func:`~tokenkeeper.app.main_callback`:

* ``--json`` and ``--plain`` select a mode explicitly.
* Otherwise Rich is used on an interactive terminal and plain text when
  stdout is piped, unless ``NO_COLOR``, ``TERM=dumb`` or ``--no-color``
  turns colour off.

Commands do not hold an :class:`OutputManager` themselves; they call the
module-level helpers (:func:`emit`, :func:`info`, :func:`error`, ...),
which forward to whichever manager :func:`set_output` installed last.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

_LOGGER_NAME = "tokenkeeper"

# kind -> (prefix, rich style)
_NOTICE_STYLES: dict[str, tuple[str, str]] = {
    "info": ("", ""),
    "success": ("", "green"),
    "warning": ("Warning: ", "yellow"),
    "error": ("Error: ", "bold red"),
    "hint": ("→ ", "dim"),
    "debug": ("[debug] ", "dim"),
}
_UNSUPPRESSABLE = frozenset({"warning", "error"})


class OutputFormat(str, Enum):
    """Rendering mode for data written to stdout."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def _stdout_is_terminal() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def color_disabled() -> bool:
    """Whether the environment asks for colourless output.

    ``NO_COLOR`` counts when present at all, even if empty
    (https://no-color.org). ``TERM=dumb`` counts too.
    """
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


class OutputManager:
    """Per-invocation output settings and the consoles that honour them.

    Args:
        format: Requested rendering mode. ``AUTO`` becomes ``RICH`` on a
            colour-capable terminal and ``PLAIN`` anywhere else.
        no_color: Turn colour off regardless of the environment.
        quiet: Drop informational notices. Warnings and errors still show.
        verbose: Show debug notices and ``tokenkeeper.*`` INFO/DEBUG log
            records.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self.no_color = no_color or color_disabled()
        self.quiet = quiet
        self.verbose = verbose
        if format is OutputFormat.AUTO:
            colourful = _stdout_is_terminal() and not self.no_color
            format = OutputFormat.RICH if colourful else OutputFormat.PLAIN
        self.format = format

        # Without an explicit file, Rich looks up sys.stdout/sys.stderr on
        # every write, which keeps CliRunner and capfd capture working.
        self._data_console = Console(no_color=self.no_color, force_terminal=True)
        self._notice_console = Console(
            stderr=True, no_color=self.no_color, highlight=False, soft_wrap=True
        )
        self._log_handler: Optional[logging.Handler] = None

    def __repr__(self) -> str:
        return (
            f"OutputManager(format={self.format.value}, quiet={self.quiet}, "
            f"verbose={self.verbose})"
        )

    # -- stdout -------------------------------------------------------------

    def emit(self, data: Any) -> None:
        """Write a record (dict), a list of records, or a scalar to stdout."""
        if self.format is OutputFormat.JSON:
            self.emit_line(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self.format is OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.emit_line(line)
        elif isinstance(data, (dict, list)):
            self._data_console.print(JSON.from_data(data, default=str))
        else:
            self._data_console.print(str(data), markup=False)

    def emit_line(self, text: str) -> None:
        """Write *text* verbatim to stdout, followed by a newline."""
        sys.stdout.write(f"{text}\n")
        sys.stdout.flush()

    def emit_table(
        self,
        columns: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows to stdout.

        JSON mode produces a list of objects keyed by column name; plain mode
        a header line followed by tab-separated rows.
        """
        if self.format is OutputFormat.JSON:
            objects = [{col: cell for col, cell in zip(columns, row)} for row in rows]
            self.emit(objects)
            return
        if self.format is OutputFormat.PLAIN:
            for cells in [columns, *rows]:
                self.emit_line("\t".join(cells))
            return
        table = Table(*columns, title=title, header_style="bold cyan")
        for row in rows:
            table.add_row(*row)
        self._data_console.print(table)

    # -- stderr -------------------------------------------------------------

    def notify(self, kind: str, message: str) -> None:
        """Write an operator notice of the given *kind* to stderr.

        *kind* is one of ``info``, ``success``, ``warning``, ``error``,
        ``hint`` or ``debug``. ``--quiet`` drops everything except warnings
        and errors; debug notices need ``--verbose``.
        """
        prefix, style = _NOTICE_STYLES[kind]
        if kind == "debug" and not self.verbose:
            return
        if self.quiet and kind not in _UNSUPPRESSABLE:
            return
        if self.no_color:
            sys.stderr.write(f"{prefix}{message}\n")
            sys.stderr.flush()
        else:
            self._notice_console.print(Text(prefix + message, style=style))

    def attach_logging(self) -> None:
        """Send ``tokenkeeper.*`` log records to stderr.

        The handler threshold follows the notice rules: DEBUG with
        ``--verbose``, ERROR with ``--quiet``, WARNING otherwise.
        """
        self.detach_logging()
        if self.verbose:
            threshold = logging.DEBUG
        elif self.quiet:
            threshold = logging.ERROR
        else:
            threshold = logging.WARNING

        if self.no_color:
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
            )
        else:
            handler = RichHandler(console=self._notice_console, show_path=False)
        handler.setLevel(threshold)

        logger = logging.getLogger(_LOGGER_NAME)
        logger.addHandler(handler)
        if logger.level == logging.NOTSET or logger.level > threshold:
            logger.setLevel(threshold)
        self._log_handler = handler

    def detach_logging(self) -> None:
        handler, self._log_handler = self._log_handler, None
        if handler is not None:
            logging.getLogger(_LOGGER_NAME).removeHandler(handler)


def _plain_lines(data: Any) -> list[str]:
    if isinstance(data, dict):
        return [f"{key}\t{'' if value is None else value}" for key, value in data.items()]
    if isinstance(data, list):
        return [
            "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
            for item in data
        ]
    return [str(data)]


_current: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """The installed :class:`OutputManager`; a default one is made on first use."""
    global _current
    if _current is None:
        _current = OutputManager()
    return _current


def set_output(output: OutputManager) -> None:
    """Install *output*, unhooking the logging handler of the one it replaces."""
    global _current
    previous, _current = _current, output
    if previous is not None and previous is not output:
        previous.detach_logging()


def reset_output() -> None:
    global _current
    previous, _current = _current, None
    if previous is not None:
        previous.detach_logging()


def emit(data: Any) -> None:
    get_output().emit(data)


def emit_line(text: str) -> None:
    get_output().emit_line(text)


def emit_table(columns: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().emit_table(columns, rows, title)


def info(message: str) -> None:
    get_output().notify("info", message)


def success(message: str) -> None:
    get_output().notify("success", message)


def warning(message: str) -> None:
    get_output().notify("warning", message)


def error(message: str) -> None:
    get_output().notify("error", message)


def hint(message: str) -> None:
    get_output().notify("hint", message)


def debug(message: str) -> None:
    get_output().notify("debug", message)

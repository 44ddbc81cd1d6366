"""The ``tokenkeeper`` command line.

Global flags are parsed once by :func:`main_callback`, which installs the
process-wide :class:`~tokenkeeper.output.OutputManager` and remembers the
selected profile for the sub-commands in :mod:`tokenkeeper.commands`.

:func:`main` is what the console script runs. Errors raised by the library
end the process with the exit code their class declares. Anything else is
treated as a bug: the traceback goes to a crash file under the data
directory and the user only sees its path.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from tokenkeeper import __version__
from tokenkeeper.commands.profile import profile_app
from tokenkeeper.commands.token import (
    request_command,
    status_command,
    token_command,
    watch_command,
)
from tokenkeeper.exceptions import TokenKeeperError
from tokenkeeper.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS
from tokenkeeper.output import OutputFormat, OutputManager, error, set_output

app = typer.Typer(
    name="tokenkeeper",
    help="Keep an OAuth2 client-credentials token fresh and use it.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

for _name, _command in (
    ("token", token_command),
    ("watch", watch_command),
    ("request", request_command),
    ("status", status_command),
):
    app.command(_name)(_command)
app.add_typer(profile_app, name="profile", help="Create, inspect and remove profiles.")


def _print_version(requested: bool) -> None:
    if not requested:
        return
    typer.echo(f"tokenkeeper {__version__}")
    raise typer.Exit(code=EXIT_SUCCESS)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", is_eager=True, callback=_print_version,
        help="Print the tokenkeeper version and exit.",
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p",
        help="Profile to use (default: $TOKENKEEPER_PROFILE or the configured default).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Write data to stdout as JSON."),
    as_plain: bool = typer.Option(
        False, "--plain", help="Write data to stdout as tab-separated text."
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Never colour the output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only report warnings and errors on stderr."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Also show debug notices and renewal log records."
    ),
) -> None:
    """Keep an OAuth2 client-credentials token fresh and use it."""
    requested = OutputFormat.AUTO
    if as_json:
        requested = OutputFormat.JSON
    elif as_plain:
        requested = OutputFormat.PLAIN

    manager = OutputManager(requested, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(manager)
    manager.attach_logging()

    ctx.obj = {**(ctx.obj or {}), "profile": profile, "verbose": verbose}


def _setup_signal_handlers() -> None:
    """Make SIGTERM unwind like Ctrl-C so open managers get shut down."""

    def _on_sigterm(signum, frame):
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _on_sigterm)


def _save_crash_report() -> Path:
    """Dump the exception being handled into ``<data_dir>/logs`` and return the file."""
    from tokenkeeper.config import get_data_dir

    directory = get_data_dir() / "logs"
    directory.mkdir(parents=True, exist_ok=True)
    report = directory / datetime.now().strftime("crash-%Y%m%d-%H%M%S.log")
    report.write_text(traceback.format_exc(), encoding="utf-8")
    return report


def main() -> None:
    """Run the CLI and exit with a status code that reflects the outcome."""
    _setup_signal_handlers()
    try:
        app()
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        status = EXIT_INTERRUPTED
    except TokenKeeperError as exc:
        error(str(exc))
        status = exc.exit_code
    except Exception:
        error(f"Unexpected error. Debug log: {_save_crash_report()}")
        status = EXIT_GENERIC_FAILURE
    else:
        status = EXIT_SUCCESS
    sys.exit(status)

"""Built-in CLI commands for tokenkeeper.

- :mod:`tokenkeeper.commands.token` -- ``token``, ``watch``, ``request``, ``status``.
- :mod:`tokenkeeper.commands.profile` -- the ``profile`` sub-command group.
"""

from __future__ import annotations

import typer

from tokenkeeper.exceptions import TokenKeeperError
from tokenkeeper.output import error


def exit_for(exc: TokenKeeperError) -> typer.Exit:
    """Report *exc* on stderr and return the :class:`typer.Exit` for its exit code.

    Commands catch :class:`~tokenkeeper.exceptions.TokenKeeperError` at their
    top level and ``raise exit_for(exc) from None``.
    """
    error(str(exc))
    return typer.Exit(code=exc.exit_code)

"""Process exit codes for the tokenkeeper CLI.

Each value is the ``exit_code`` class attribute of the matching
:class:`~tokenkeeper.exceptions.TokenKeeperError` subclass.
Shell wrappers can inspect the exit code to tell a rejected client secret
apart from a token endpoint that never answered.

Example::

    $ tokenkeeper token --timeout 10
    $ echo $?
    8   # EXIT_NOT_READY -- no token was acquired within 10 seconds
"""

EXIT_SUCCESS = 0
"""Everything worked."""

EXIT_GENERIC_FAILURE = 1
"""Any failure without a more specific code, including bad configuration."""

EXIT_INVALID_USAGE = 2
"""Bad arguments, or profile settings that cannot be used."""

EXIT_ACQUISITION_FAILURE = 3
"""The token endpoint rejected the request or returned an unusable response."""

EXIT_NOT_READY = 8
"""No credential became available within the allowed time."""

EXIT_MANAGER_CLOSED = 9
"""The token manager was already shut down."""

EXIT_INTERRUPTED = 130
"""Interrupted by Ctrl-C or SIGTERM (128 + SIGINT)."""

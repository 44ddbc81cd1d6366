"""Exception hierarchy for tokenkeeper.

All exceptions inherit from :class:`TokenKeeperError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tokenkeeper.exit_codes`.
The top-level error handler in :func:`tokenkeeper.app.main` catches
``TokenKeeperError`` and exits with the appropriate code.

Inside the library, :class:`AcquisitionError` never reaches callers of the
token manager: the renewal loop catches it and retries.

Subclass hierarchy::

    TokenKeeperError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- AcquisitionError    (exit 3)
    +-- ConfigError         (exit 1)
    +-- NotReadyError       (exit 8)
    +-- ManagerClosedError  (exit 9)
"""

from __future__ import annotations

from typing import Optional

from tokenkeeper.exit_codes import (
    EXIT_ACQUISITION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_MANAGER_CLOSED,
    EXIT_NOT_READY,
)


class TokenKeeperError(Exception):
    """Base exception for all tokenkeeper errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(TokenKeeperError):
    """Raised by commands for bad arguments or unusable profile settings."""

    exit_code = EXIT_INVALID_USAGE


class AcquisitionError(TokenKeeperError):
    """Raised by an acquirer when a credential cannot be obtained.

    Covers network failures, non-success status codes and malformed token
    responses. ``status_code`` is set when the endpoint answered with an
    HTTP error.
    """

    exit_code = EXIT_ACQUISITION_FAILURE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(TokenKeeperError):
    """Raised for invalid manager options, profiles, or credential sources."""

    exit_code = EXIT_GENERIC_FAILURE


class NotReadyError(TokenKeeperError):
    """Raised when no credential became available within the allowed time."""

    exit_code = EXIT_NOT_READY


class ManagerClosedError(TokenKeeperError):
    """Raised when a shut-down token manager is used."""

    exit_code = EXIT_MANAGER_CLOSED

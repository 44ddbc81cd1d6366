"""Shared test fixtures for tokenkeeper.

Provides scripted acquirers for driving the renewal loop deterministically,
isolated config environments, output state management, and a CLI runner.
These fixtures are automatically discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import pytest

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.auth.manager import TokenManager
from tokenkeeper.exceptions import AcquisitionError
from tokenkeeper.models import Credential
from tokenkeeper.output import reset_output


# ---------------------------------------------------------------------------
# Scripted acquirer
# ---------------------------------------------------------------------------


Outcome = Union[Credential, Exception, Callable[[], Credential]]


class ScriptedAcquirer(CredentialAcquirer):
    """Acquirer that replays a fixed script of outcomes.

    Each :meth:`acquire` call pops the next outcome: a :class:`Credential` is
    returned, an exception is raised, and a callable is invoked (useful for
    blocking until the test releases it). Once the script is exhausted the
    *fallback* outcome is used for every further call.
    """

    def __init__(self, outcomes: Iterable[Outcome] = (), fallback: Optional[Outcome] = None) -> None:
        self._outcomes: deque[Outcome] = deque(outcomes)
        self._fallback = fallback if fallback is not None else AcquisitionError("script exhausted")
        self._lock = threading.Lock()
        self.calls = 0
        self.called = threading.Event()
        self.closed = False

    @property
    def provider_type(self) -> str:
        return "scripted"

    def push(self, outcome: Outcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    def acquire(self) -> Credential:
        with self._lock:
            self.calls += 1
            outcome = self._outcomes.popleft() if self._outcomes else self._fallback
        self.called.set()
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Credential):
            return outcome
        return outcome()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def scripted() -> Callable[..., ScriptedAcquirer]:
    """Factory for :class:`ScriptedAcquirer` instances.

    Usage::

        acquirer = scripted([AcquisitionError("down"), cred], fallback=cred)
    """
    return ScriptedAcquirer


@pytest.fixture
def scripted_acquirer() -> ScriptedAcquirer:
    """An acquirer that hands out the same one-hour credential on every call."""
    return ScriptedAcquirer(fallback=Credential(access_token="abc", expires_in=3600))


@pytest.fixture
def make_manager() -> Callable[..., TokenManager]:
    """Factory for token managers with short test delays.

    Options not given default to a 10 ms retry delay, a 10 ms minimum
    renewal delay and a one-hour fixed renewal interval. Every manager
    created through the factory is shut down after the test.
    """
    created: list[TokenManager] = []

    def _make(acquirer: CredentialAcquirer, **kwargs: Any) -> TokenManager:
        options: dict[str, Any] = {
            "renewal_interval": 3600.0,
            "retry_delay": 0.01,
            "min_renewal_delay": 0.01,
            "shutdown_timeout": 2.0,
        }
        options.update(kwargs)
        manager = TokenManager(acquirer, **options)
        created.append(manager)
        return manager

    yield _make
    for manager in created:
        manager.shutdown()


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    Commands run through the CLI install a manager and attach a log handler
    to the ``tokenkeeper`` logger that may hold the stream CliRunner swapped
    in. Resetting detaches the handler and forces a fresh manager on next
    use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, and clears all
    TOKENKEEPER_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("tokenkeeper.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "TOKENKEEPER_PROFILE",
        "TOKENKEEPER_RENEWAL_INTERVAL",
        "TOKENKEEPER_EXPIRY_BUFFER",
        "TOKENKEEPER_RETRY_DELAY",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()

"""In-memory holder for the current credential and its readiness gate.

:class:`CredentialStore` is the only state the renewal thread shares with
request-signing callers. It is guarded by a :class:`ReadWriteLock`: any
number of readers proceed in parallel, the single writer (the renewal loop)
gets exclusive access while it swaps in a new value.

The store swaps whole :class:`~tokenkeeper.models.Credential` objects, which
are immutable, so a reader sees either the old or the new credential and
never a mix of the two.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from tokenkeeper.auth.gate import ReadinessGate
from tokenkeeper.models import Credential


class ReadWriteLock:
    """Many-readers / one-writer lock with writer preference.

    A waiting writer blocks new readers so that a steady stream of readers
    cannot starve the renewal loop.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class CredentialStore:
    """Current credential, its generation, and the active readiness gate.

    Invariant: the current gate is ready if and only if a credential is
    present and belongs to the gate's generation.

    Example::

        store = CredentialStore()
        gate = store.current_gate()
        store.publish(Credential(access_token="abc"))
        assert gate.is_ready
        assert store.header_value() == "Bearer abc"
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._credential: Optional[Credential] = None
        self._credential_generation = 0
        self._gate = ReadinessGate(generation=1)
        self._published_at: Optional[float] = None

    # ------------------------------------------------------------------ #
    # Writer side (renewal loop only)
    # ------------------------------------------------------------------ #

    def publish(self, credential: Credential) -> int:
        """Install *credential* for the current generation and open its gate.

        Returns:
            The generation number the credential was published under.
        """
        with self._lock.write_locked():
            self._credential = credential
            self._credential_generation = self._gate.generation
            self._published_at = time.monotonic()
            self._gate.signal_ready()
            return self._credential_generation

    def advance(self) -> ReadinessGate:
        """Install a fresh, not-ready gate for the next generation.

        Called once the current generation has been published, before the
        next acquisition starts.
        """
        with self._lock.write_locked():
            if self._gate.is_ready or self._gate.is_abandoned:
                self._gate = ReadinessGate(generation=self._gate.generation + 1)
            return self._gate

    def withdraw(self) -> Optional[Credential]:
        """Drop the current credential, e.g. because it has expired.

        Returns:
            The credential that was removed, or ``None``.
        """
        with self._lock.write_locked():
            credential = self._credential
            self._credential = None
            self._published_at = None
            return credential

    def abandon_gate(self) -> None:
        """Release anyone waiting on the current gate without readiness."""
        with self._lock.write_locked():
            self._gate.abandon()

    # ------------------------------------------------------------------ #
    # Reader side
    # ------------------------------------------------------------------ #

    def read_current(self) -> Optional[Credential]:
        with self._lock.read_locked():
            return self._credential

    def header_value(self) -> str:
        """Return ``"<token_type> <token>"``, or ``""`` when nothing is published."""
        credential = self.read_current()
        if credential is None:
            return ""
        return credential.authorization_value

    def current_gate(self) -> ReadinessGate:
        with self._lock.read_locked():
            return self._gate

    def snapshot(self) -> tuple[Optional[Credential], ReadinessGate]:
        """Read the credential and the gate together under one lock.

        A caller that finds no credential can wait on the returned gate and
        is guaranteed to be released by the very next publish.
        """
        with self._lock.read_locked():
            return self._credential, self._gate

    @property
    def generation(self) -> int:
        """Generation of the published credential (``0`` if none yet)."""
        with self._lock.read_locked():
            return self._credential_generation

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Whether the published credential has outlived its reported lifetime.

        Credentials with an unknown lifetime (``expires_in == 0``) never
        expire here. Returns ``False`` when nothing is published.
        """
        with self._lock.read_locked():
            credential = self._credential
            published_at = self._published_at
        if credential is None or published_at is None or credential.expires_in <= 0:
            return False
        if now is None:
            now = time.monotonic()
        return now - published_at >= credential.expires_in

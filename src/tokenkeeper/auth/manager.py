"""Token manager -- keeps one credential fresh for many concurrent callers.

:class:`TokenManager` owns a background thread that runs the renewal loop::

    ACQUIRING --ok--> PUBLISHED --> SCHEDULED_WAIT --> ACQUIRING (next generation)
        |
        +--failure--> RETRY_BACKOFF --> ACQUIRING

Each successful acquisition is published into a
:class:`~tokenkeeper.auth.store.CredentialStore` under a new *generation*,
which releases everyone waiting on that generation's
:class:`~tokenkeeper.auth.gate.ReadinessGate`. The loop then sleeps until the
next scheduled renewal. Failed acquisitions are retried after a fixed delay,
forever; the previously published credential stays in use until its reported
lifetime runs out.

Callers never talk to the token endpoint. They read the current value with
:meth:`TokenManager.current_token`, :meth:`TokenManager.apply_to`, or through
:class:`~tokenkeeper.auth.transport.TokenManagerAuth` for httpx clients.

See Also:
    :class:`~tokenkeeper.auth.base.CredentialAcquirer` -- the acquisition
    interface.
    :class:`~tokenkeeper.models.ManagerConfig` -- schedule and retry settings.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import MutableMapping
from typing import Any, Callable, Optional, TypeVar

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.auth.store import CredentialStore
from tokenkeeper.config import build_manager_config
from tokenkeeper.exceptions import (
    AcquisitionError,
    ConfigError,
    ManagerClosedError,
    NotReadyError,
)
from tokenkeeper.models import (
    MAX_DURATION,
    Credential,
    LifecycleState,
    ManagerConfig,
    ManagerStatus,
)

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
ASYNC_POLL_INTERVAL = 0.25

R = TypeVar("R")


def compute_renewal_delay(credential: Credential, config: ManagerConfig) -> float:
    """Return how many seconds to wait before renewing *credential*.

    A positive ``renewal_interval`` wins unconditionally. Otherwise the delay
    is the reported lifetime minus ``expiry_buffer``, but never less than
    ``min_renewal_delay``. The result is capped at
    :data:`~tokenkeeper.models.MAX_DURATION`, so an endpoint reporting an
    absurd lifetime still gets renewed eventually.
    """
    if config.uses_fixed_interval:
        return float(config.renewal_interval)
    delay = credential.expires_in - config.expiry_buffer
    return min(max(delay, config.min_renewal_delay), MAX_DURATION)


class TokenManager:
    """Background renewal of a single credential with a thread-safe read path.

    Args:
        acquirer: Source of new credentials.
        config: Renewal schedule and retry settings. Defaults to
            :class:`~tokenkeeper.models.ManagerConfig` defaults (renew every
            59 minutes, retry every 5 seconds).
        on_renewed: Optional callback invoked from the renewal thread with
            every newly published credential. Exceptions it raises are
            logged and ignored. Keep it quick; the loop waits for it.
        autostart: Start the renewal thread immediately.
        name: Label used in the thread name and log messages.
        **overrides: Individual :class:`~tokenkeeper.models.ManagerConfig`
            fields applied on top of *config*, in the order given.

    Raises:
        ConfigError: If any option is invalid.

    Example::

        manager = TokenManager(acquirer, renewal_interval=59 * 60)
        manager.ensure_ready(timeout=30)
        response = httpx.get(url, headers=manager.apply_to({}))
        manager.shutdown()
    """

    def __init__(
        self,
        acquirer: CredentialAcquirer,
        config: Optional[ManagerConfig] = None,
        *,
        on_renewed: Optional[Callable[[Credential], Any]] = None,
        autostart: bool = True,
        name: str = "default",
        **overrides: Any,
    ) -> None:
        if on_renewed is not None and not callable(on_renewed):
            raise ConfigError("on_renewed must be callable")
        self._config = build_manager_config(config, **overrides)
        self._acquirer = acquirer
        self._on_renewed = on_renewed
        self._name = name

        self._store = CredentialStore()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._closed = False

        self._state = LifecycleState.IDLE
        self._next_renewal_at: Optional[float] = None
        self._consecutive_failures = 0

        if autostart:
            self.start()

    def __repr__(self) -> str:
        return (
            f"<TokenManager name={self._name!r} state={self._state.value} "
            f"generation={self._store.generation}>"
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def __enter__(self) -> TokenManager:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def start(self) -> None:
        """Start the renewal thread. Calling it on a running manager is a no-op.

        Raises:
            ManagerClosedError: If the manager has been shut down.
        """
        with self._start_lock:
            if self._closed:
                raise ManagerClosedError(f"Token manager {self._name!r} has been shut down")
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._run,
                name=f"tokenkeeper-{self._name}",
                daemon=True,
            )
            self._thread.start()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the renewal thread and release waiters.

        Aborts any scheduled wait or retry pause, releases callers blocked in
        :meth:`wait_until_ready` (they get ``False``), and withdraws the
        current credential so it is not served after renewals stop.
        Idempotent.

        Args:
            timeout: Seconds to wait for the thread to finish. Defaults to
                ``config.shutdown_timeout``.
        """
        with self._start_lock:
            already_closed = self._closed
            self._closed = True
        self._stop_event.set()
        self._release()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            if timeout is None:
                timeout = self._config.shutdown_timeout
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(
                    "Renewal thread for %r did not stop within %.1fs",
                    self._name,
                    timeout,
                )
        if thread is None or not thread.is_alive():
            self._state = LifecycleState.STOPPED
        if not already_closed:
            logger.debug("Token manager %r shut down", self._name)

    @property
    def config(self) -> ManagerConfig:
        return self._config

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def generation(self) -> int:
        """Generation of the currently published credential (``0`` if none)."""
        return self._store.generation

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    # Readiness
    # ------------------------------------------------------------------ #

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until a credential has been published.

        Returns immediately when a credential is already available. Without
        a timeout this blocks across any number of failed acquisitions.

        Args:
            timeout: Maximum seconds to wait. ``None`` waits indefinitely.

        Returns:
            ``True`` once a credential is available; ``False`` on timeout or
            if the manager is shut down first.
        """
        credential, gate = self._store.snapshot()
        if credential is not None:
            return True
        if self._closed:
            return False
        return gate.wait(timeout)

    async def wait_until_ready_async(self, timeout: Optional[float] = None) -> bool:
        """Async counterpart of :meth:`wait_until_ready`.

        The blocking wait runs in worker threads so the event loop stays
        responsive. Each worker blocks for at most ``ASYNC_POLL_INTERVAL``
        seconds, so cancelling the awaiting task frees its thread shortly
        after, even when *timeout* is ``None``.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            if self._store.read_current() is not None:
                return True
            if self._closed:
                return False
            step = ASYNC_POLL_INTERVAL
            if deadline is not None:
                step = min(step, max(0.0, deadline - loop.time()))
            if await asyncio.to_thread(self.wait_until_ready, step):
                return True
            if deadline is not None and loop.time() >= deadline:
                return False

    def ensure_ready(self, timeout: Optional[float] = None) -> None:
        """Wait for a credential and raise if none becomes available.

        Raises:
            NotReadyError: If *timeout* elapsed without a credential.
            ManagerClosedError: If the manager is (or gets) shut down.
        """
        if self._closed:
            raise ManagerClosedError(f"Token manager {self._name!r} has been shut down")
        if self.wait_until_ready(timeout):
            return
        if self._closed:
            raise ManagerClosedError(
                f"Token manager {self._name!r} was shut down before a credential "
                "was acquired"
            )
        raise NotReadyError(f"No credential acquired within {timeout} seconds")

    # ------------------------------------------------------------------ #
    # Read path
    # ------------------------------------------------------------------ #

    def current_credential(self) -> Optional[Credential]:
        return self._store.read_current()

    def current_token(self) -> str:
        """Return the bare access token, or ``""`` if none is published."""
        credential = self._store.read_current()
        if credential is None:
            return ""
        return credential.access_token

    def current_authorization_value(self) -> str:
        """Return ``"<token_type> <token>"``, or ``""`` if none is published."""
        return self._store.header_value()

    def apply_to(self, request: R) -> R:
        """Set the ``Authorization`` header on *request* if a credential exists.

        *request* may be a header mapping (``dict``, :class:`httpx.Headers`)
        or any object with a mutable ``headers`` mapping, such as
        :class:`httpx.Request` or ``requests.PreparedRequest``. Nothing is
        changed when no credential is published yet.

        Returns:
            The same *request*, for chaining.

        Raises:
            TypeError: If *request* has no usable header mapping.
        """
        if isinstance(request, MutableMapping):
            headers = request
        else:
            headers = getattr(request, "headers", None)
            if not isinstance(headers, MutableMapping):
                raise TypeError(
                    f"Cannot apply credentials to {type(request).__name__}: "
                    "expected a mapping or an object with a 'headers' mapping"
                )
        value = self._store.header_value()
        if value:
            headers[AUTHORIZATION_HEADER] = value
        return request

    def status(self) -> ManagerStatus:
        """Return a token-free snapshot of the manager for display."""
        credential = self._store.read_current()
        next_in: Optional[float] = None
        if self._next_renewal_at is not None and self._state in (
            LifecycleState.SCHEDULED_WAIT,
            LifecycleState.RETRY_BACKOFF,
        ):
            next_in = max(0.0, self._next_renewal_at - time.monotonic())
        return ManagerStatus(
            state=self._state,
            generation=self._store.generation,
            has_credential=credential is not None,
            token_type=credential.token_type if credential else None,
            scope=credential.scope if credential else None,
            obtained_at=credential.obtained_at if credential else None,
            expires_at=credential.expires_at if credential else None,
            next_renewal_in=next_in,
            consecutive_failures=self._consecutive_failures,
        )

    # ------------------------------------------------------------------ #
    # Renewal loop
    # ------------------------------------------------------------------ #

    def _run(self) -> None:
        logger.debug("Renewal loop for %r started", self._name)
        try:
            while not self._stop_event.is_set():
                try:
                    pause = self._cycle()
                except Exception:
                    logger.exception(
                        "Renewal cycle for %r failed unexpectedly; retrying", self._name
                    )
                    self._backoff()
                    pause = self._config.retry_delay
                if pause is None or self._stop_event.wait(pause):
                    break
        finally:
            if self._stop_event.is_set():
                self._release()
            self._state = LifecycleState.STOPPED
            self._next_renewal_at = None
            logger.debug("Renewal loop for %r stopped", self._name)

    def _cycle(self) -> Optional[float]:
        """Run one acquisition attempt.

        Returns the pause before the next attempt, or ``None`` when shutdown
        was requested while acquiring.
        """
        self._state = LifecycleState.ACQUIRING
        credential = self._acquire_once()
        if credential is None:
            self._backoff()
            return self._config.retry_delay
        if self._stop_event.is_set():
            return None
        delay = self._publish(credential)
        self._next_renewal_at = time.monotonic() + delay
        self._state = LifecycleState.SCHEDULED_WAIT
        return delay

    def _acquire_once(self) -> Optional[Credential]:
        try:
            return self._acquirer.acquire()
        except AcquisitionError as exc:
            logger.warning(
                "Credential acquisition for %r failed: %s", self._name, exc
            )
        except Exception:
            logger.exception(
                "Unexpected error while acquiring credential for %r", self._name
            )
        return None

    def _backoff(self) -> None:
        self._consecutive_failures += 1
        self._next_renewal_at = time.monotonic() + self._config.retry_delay
        self._state = LifecycleState.RETRY_BACKOFF
        if self._store.is_expired():
            expired = self._store.withdraw()
            if expired is not None:
                logger.warning(
                    "Credential for %r expired while renewal kept failing; "
                    "withdrawn until the next successful acquisition",
                    self._name,
                )
        logger.info(
            "Retrying acquisition for %r in %.1fs (attempt %d failed)",
            self._name,
            self._config.retry_delay,
            self._consecutive_failures,
        )

    def _publish(self, credential: Credential) -> float:
        delay = compute_renewal_delay(credential, self._config)
        self._state = LifecycleState.PUBLISHED
        self._consecutive_failures = 0
        generation = self._store.publish(credential)
        self._store.advance()
        self._notify(credential)
        logger.info(
            "Published credential generation %d for %r (type=%s, expires_in=%ss); "
            "renewing in %.1fs (%s)",
            generation,
            self._name,
            credential.token_type,
            credential.expires_in,
            delay,
            "fixed interval" if self._config.uses_fixed_interval else "reported expiry",
        )
        return delay

    def _notify(self, credential: Credential) -> None:
        if self._on_renewed is None:
            return
        try:
            self._on_renewed(credential)
        except Exception:
            logger.exception("on_renewed callback for %r raised; ignoring", self._name)

    def _release(self) -> None:
        self._store.abandon_gate()
        self._store.withdraw()

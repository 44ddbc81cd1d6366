"""One-shot readiness signal, one instance per credential generation.

A :class:`ReadinessGate` starts out *not ready* and becomes *ready* exactly
once, when the credential of its generation is published. Every thread
blocked in :meth:`ReadinessGate.wait` is released at that moment.

The token manager installs a fresh gate for generation N+1 as soon as
generation N is published. A caller that picked up gate N keeps waiting on
gate N and is released by generation N's credential; it is never moved onto
a later gate mid-wait.
"""

from __future__ import annotations

import threading
from typing import Optional


class ReadinessGate:
    """Broadcast signal that flips from not-ready to ready once.

    Args:
        generation: The credential generation this gate belongs to.

    Example::

        gate = ReadinessGate(generation=1)
        threading.Thread(target=gate.signal_ready).start()
        assert gate.wait(timeout=1.0)
    """

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._ready = False
        self._abandoned = False

    def __repr__(self) -> str:
        if self._ready:
            state = "ready"
        elif self._abandoned:
            state = "abandoned"
        else:
            state = "waiting"
        return f"<ReadinessGate generation={self.generation} {state}>"

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def is_abandoned(self) -> bool:
        return self._abandoned

    def signal_ready(self) -> bool:
        """Mark the gate ready and release all waiters.

        Returns:
            ``True`` if this call performed the transition, ``False`` if the
            gate was already ready or had been abandoned.
        """
        with self._lock:
            if self._ready or self._abandoned:
                return False
            self._ready = True
        self._event.set()
        return True

    def abandon(self) -> bool:
        """Release all waiters without marking the gate ready.

        Used when the owning manager shuts down before this generation's
        credential arrives. A gate that is already ready stays ready.

        Returns:
            ``True`` if the gate was abandoned by this call.
        """
        with self._lock:
            if self._ready or self._abandoned:
                return False
            self._abandoned = True
        self._event.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the gate is ready, abandoned, or *timeout* elapses.

        Args:
            timeout: Maximum seconds to wait. ``None`` waits indefinitely.

        Returns:
            ``True`` only if the gate is ready.
        """
        self._event.wait(timeout)
        return self._ready

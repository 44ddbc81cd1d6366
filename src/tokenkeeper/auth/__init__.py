"""Credential lifecycle management for tokenkeeper.

The main entry points are:

- :class:`CredentialAcquirer` -- abstract base class for credential sources.
- :class:`TokenManager` -- background renewal loop plus the thread-safe read
  path that request-signing callers use.
- :class:`TokenManagerAuth` -- :class:`httpx.Auth` adapter for a manager.
- :class:`CredentialStore` and :class:`ReadinessGate` -- the shared state
  behind the manager, exposed for embedding and testing.

Typical usage::

    from tokenkeeper.auth import TokenManager

    with TokenManager(acquirer, on_renewed=print) as manager:
        manager.ensure_ready(timeout=30)
        manager.apply_to(request)
"""

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.auth.gate import ReadinessGate
from tokenkeeper.auth.manager import TokenManager, compute_renewal_delay
from tokenkeeper.auth.store import CredentialStore, ReadWriteLock
from tokenkeeper.auth.transport import TokenManagerAuth

__all__ = [
    "CredentialAcquirer",
    "CredentialStore",
    "ReadWriteLock",
    "ReadinessGate",
    "TokenManager",
    "TokenManagerAuth",
    "compute_renewal_delay",
]

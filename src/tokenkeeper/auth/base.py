"""Abstract base class for credential acquirers.

A :class:`CredentialAcquirer` is the single capability the token manager
needs from the outside world: *get me a fresh credential*. How it does that
(an HTTP token endpoint, a static value, a secrets service) is up to the
implementation.

To implement a new source, subclass :class:`CredentialAcquirer`, set the
:attr:`~CredentialAcquirer.provider_type` property, and implement
:meth:`~CredentialAcquirer.acquire`. Optionally override
:meth:`~CredentialAcquirer.close` to release network resources.

See Also:
    :mod:`tokenkeeper.providers` for the built-in acquirers.
    :class:`tokenkeeper.auth.manager.TokenManager`, the only caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tokenkeeper.models import Credential, ProviderConfig, RequestConfig


class CredentialAcquirer(ABC):
    """Abstract base class for anything that can obtain a credential.

    The token manager calls :meth:`acquire` from its renewal thread, once
    per generation and again after every failure. Implementations must be
    safe to call repeatedly and should not cache: each call is a request
    for a *new* credential.
    """

    @property
    @abstractmethod
    def provider_type(self) -> str:
        """Return the identifier of this acquirer (e.g. ``"client_credentials"``)."""
        ...

    @abstractmethod
    def acquire(self) -> Credential:
        """Obtain a new credential.

        Returns:
            A freshly issued :class:`~tokenkeeper.models.Credential`.

        Raises:
            AcquisitionError: If the credential cannot be obtained. The
                token manager treats this as recoverable and retries.
        """
        ...

    def close(self) -> None:
        """Release any resources held by the acquirer. Default is a no-op."""

    @classmethod
    def from_config(
        cls, provider: ProviderConfig, request: RequestConfig
    ) -> CredentialAcquirer:
        """Build an acquirer from a profile's provider and request settings.

        Acquirers that can be configured from a profile override this; the
        :class:`~tokenkeeper.providers.registry.ProviderRegistry` calls it.

        Raises:
            ConfigError: If a required setting or secret cannot be resolved.
        """
        raise NotImplementedError(f"{cls.__name__} cannot be built from a profile")

    @classmethod
    def validate_config(cls, provider: ProviderConfig) -> list[str]:
        """Check a provider configuration before use.

        Returns:
            Human-readable error messages. An empty list means valid.
        """
        return []

"""Provider registry -- maps provider type strings to acquirer classes.

The :class:`ProviderRegistry` turns the ``provider`` section of a
:class:`~tokenkeeper.models.Profile` into a ready-to-use
:class:`~tokenkeeper.auth.base.CredentialAcquirer`. For most use cases, call
:func:`create_default_registry` to get a registry pre-loaded with every
built-in acquirer.

See Also:
    :class:`~tokenkeeper.auth.base.CredentialAcquirer` -- the acquirer
    interface, including ``from_config`` and ``validate_config``.
"""

from __future__ import annotations

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.exceptions import ConfigError
from tokenkeeper.models import Profile, ProviderConfig


class ProviderRegistry:
    """Registry and factory for credential acquirers.

    Example::

        registry = ProviderRegistry()
        registry.register("static", StaticAcquirer)
        acquirer = registry.create(profile)
    """

    def __init__(self) -> None:
        self._providers: dict[str, type[CredentialAcquirer]] = {}

    def register(self, provider_type: str, acquirer_cls: type[CredentialAcquirer]) -> None:
        """Register an acquirer class for *provider_type*.

        A class already registered for the same type is silently replaced.
        """
        self._providers[provider_type] = acquirer_cls

    def get(self, provider_type: str) -> type[CredentialAcquirer]:
        """Return the acquirer class registered for *provider_type*.

        Raises:
            ConfigError: If no acquirer is registered for *provider_type*.
        """
        acquirer_cls = self._providers.get(provider_type)
        if acquirer_cls is None:
            available = ", ".join(sorted(self._providers)) or "(none)"
            raise ConfigError(
                f"No credential provider registered for type '{provider_type}'. "
                f"Available types: {available}"
            )
        return acquirer_cls

    def validate(self, provider: ProviderConfig) -> list[str]:
        """Validate a provider section, including its type.

        Returns:
            Human-readable error messages. An empty list means valid.
        """
        try:
            acquirer_cls = self.get(provider.type)
        except ConfigError as exc:
            return [str(exc)]
        return acquirer_cls.validate_config(provider)

    def create(self, profile: Profile) -> CredentialAcquirer:
        """Build the acquirer described by *profile*.

        Raises:
            ConfigError: If the provider type is unknown or its settings are
                invalid.
        """
        acquirer_cls = self.get(profile.provider.type)
        return acquirer_cls.from_config(profile.provider, profile.request)

    def list_types(self) -> list[str]:
        return sorted(self._providers)


def create_default_registry() -> ProviderRegistry:
    """Create a :class:`ProviderRegistry` with all built-in acquirers.

    - ``client_credentials`` -- OAuth2 Client Credentials grant.
    - ``static`` -- pre-issued token from an env var or file.
    """
    from tokenkeeper.providers.client_credentials import ClientCredentialsAcquirer
    from tokenkeeper.providers.static import StaticAcquirer

    registry = ProviderRegistry()
    registry.register("client_credentials", ClientCredentialsAcquirer)
    registry.register("static", StaticAcquirer)
    return registry

"""Built-in credential acquirers.

- :class:`ClientCredentialsAcquirer` -- OAuth2 Client Credentials grant over httpx.
- :class:`StaticAcquirer` -- pre-issued token from a literal, env var, or file.
- :class:`ProviderRegistry` / :func:`create_default_registry` -- build an
  acquirer from a profile's ``provider`` section.
"""

from tokenkeeper.providers.client_credentials import ClientCredentialsAcquirer
from tokenkeeper.providers.registry import ProviderRegistry, create_default_registry
from tokenkeeper.providers.static import StaticAcquirer

__all__ = [
    "ClientCredentialsAcquirer",
    "ProviderRegistry",
    "StaticAcquirer",
    "create_default_registry",
]

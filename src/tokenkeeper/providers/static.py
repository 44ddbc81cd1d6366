"""Static token acquirer.

This module provides :class:`StaticAcquirer`, which implements the
``static`` provider type. A pre-issued token is resolved from the
configured ``source`` (e.g. ``env:MY_TOKEN``, ``file:~/.token``) every time
the manager asks for a new credential, so rotating the file or variable is
picked up on the next renewal.

No token exchange happens here. For the OAuth2 grant see
:mod:`tokenkeeper.providers.client_credentials`.
"""

from __future__ import annotations

from typing import Optional

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.config import resolve_credential
from tokenkeeper.exceptions import AcquisitionError, ConfigError
from tokenkeeper.models import Credential, ProviderConfig, RequestConfig


class StaticAcquirer(CredentialAcquirer):
    """Serve a token taken from a credential source or a literal value.

    Exactly one of *token* and *source* must be given.

    Args:
        token: Literal token value.
        source: Credential source descriptor, re-read on every acquisition.
        token_type: Authorization scheme for the header.
        expires_in: Lifetime reported for each credential (``0`` = unknown).
        scope: Optional scope string to report.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        source: Optional[str] = None,
        token_type: str = "Bearer",
        expires_in: int = 3600,
        scope: Optional[str] = None,
    ) -> None:
        if (token is None) == (source is None):
            raise ConfigError("StaticAcquirer needs exactly one of 'token' or 'source'")
        self._token = token
        self._source = source
        self.token_type = token_type
        self.expires_in = expires_in
        self.scope = scope

    @property
    def provider_type(self) -> str:
        return "static"

    def acquire(self) -> Credential:
        """Resolve the token and wrap it in a fresh credential.

        Raises:
            AcquisitionError: If the source cannot be resolved or is empty.
        """
        if self._token is not None:
            value = self._token
        else:
            assert self._source is not None
            try:
                value = resolve_credential(self._source)
            except ConfigError as exc:
                raise AcquisitionError(str(exc)) from exc
        if not value:
            raise AcquisitionError("Static token source resolved to an empty value")
        return Credential(
            access_token=value,
            token_type=self.token_type,
            scope=self.scope,
            expires_in=self.expires_in,
        )

    @classmethod
    def from_config(cls, provider: ProviderConfig, request: RequestConfig) -> StaticAcquirer:
        errors = cls.validate_config(provider)
        if errors:
            raise ConfigError("; ".join(errors))
        return cls(
            source=provider.source,
            token_type=provider.token_type,
            expires_in=provider.expires_in,
            scope=" ".join(provider.scopes) or None,
        )

    @classmethod
    def validate_config(cls, provider: ProviderConfig) -> list[str]:
        if not provider.source:
            return ["Static provider requires a 'source' for the token"]
        return []

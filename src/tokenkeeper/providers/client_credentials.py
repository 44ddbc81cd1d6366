"""OAuth2 Client Credentials acquirer.

This module provides :class:`ClientCredentialsAcquirer`, which performs the
non-interactive Client Credentials grant (:rfc:`6749` section 4.4),
exchanging a ``client_id`` and ``client_secret`` for an access token at the
configured ``token_url``.

Unlike a request-time auth hook, the acquirer does no caching of its own:
every :meth:`~ClientCredentialsAcquirer.acquire` call is one POST to the
token endpoint. Reuse and renewal are the job of
:class:`~tokenkeeper.auth.manager.TokenManager`.

See Also:
    :class:`tokenkeeper.auth.base.CredentialAcquirer` for the base interface.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from tokenkeeper.auth.base import CredentialAcquirer
from tokenkeeper.config import resolve_credential
from tokenkeeper.exceptions import AcquisitionError, ConfigError
from tokenkeeper.models import Credential, ProviderConfig, RequestConfig

logger = logging.getLogger(__name__)

_MAX_ERROR_BODY = 500


class ClientCredentialsAcquirer(CredentialAcquirer):
    """Obtain tokens via the OAuth2 Client Credentials grant.

    Args:
        token_url: The token endpoint.
        client_id: OAuth2 client identifier.
        client_secret: OAuth2 client secret.
        scopes: Requested scopes, sent space-separated as ``scope``.
        extra_params: Additional form fields (e.g. ``audience``).
        client_auth: ``"body"`` sends the client credentials as form fields;
            ``"basic"`` sends them as HTTP Basic auth.
        http_client: Optional :class:`httpx.Client` to reuse. When omitted
            the acquirer creates one and closes it in :meth:`close`.
        timeout: Request timeout in seconds (own client only).
        verify_ssl: Verify TLS certificates (own client only).
        default_expires_in: Lifetime assumed when the response has no
            ``expires_in`` field.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scopes: Optional[list[str]] = None,
        extra_params: Optional[dict[str, str]] = None,
        client_auth: str = "body",
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        default_expires_in: int = 3600,
    ) -> None:
        if not token_url:
            raise ConfigError("token_url is required for OAuth2 client_credentials")
        if client_auth not in ("body", "basic"):
            raise ConfigError(f"client_auth must be 'body' or 'basic', got: {client_auth}")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes or [])
        self.extra_params = dict(extra_params or {})
        self.client_auth = client_auth
        self.default_expires_in = default_expires_in
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._client = http_client
        self._owns_client = http_client is None

    def __repr__(self) -> str:
        return f"<ClientCredentialsAcquirer token_url={self.token_url!r} client_id={self.client_id!r}>"

    @property
    def provider_type(self) -> str:
        return "client_credentials"

    def acquire(self) -> Credential:
        """POST to the token endpoint and return the issued credential.

        Raises:
            AcquisitionError: If the request fails, the endpoint answers
                with a non-2xx status, or the response is not a usable token
                response.
        """
        data, auth = self._build_request()
        logger.debug("Requesting client_credentials token from %s", self.token_url)
        try:
            response = self._get_client().post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
                auth=auth,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AcquisitionError(
                f"Token request failed with status {exc.response.status_code}: "
                f"{exc.response.text[:_MAX_ERROR_BODY]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise AcquisitionError(f"Token request failed: {exc}") from exc

        try:
            token_data: Any = response.json()
        except ValueError as exc:
            raise AcquisitionError(f"Token response is not valid JSON: {exc}") from exc

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise AcquisitionError("Token response missing 'access_token' field")

        try:
            return Credential.from_token_response(token_data, self.default_expires_in)
        except ValueError as exc:
            raise AcquisitionError(f"Malformed token response: {exc}") from exc

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    @classmethod
    def from_config(
        cls, provider: ProviderConfig, request: RequestConfig
    ) -> ClientCredentialsAcquirer:
        """Build from a profile, resolving the client id and secret sources.

        Raises:
            ConfigError: If required fields are missing or a secret source
                cannot be resolved.
        """
        errors = cls.validate_config(provider)
        if errors:
            raise ConfigError("; ".join(errors))
        assert provider.client_id_source is not None
        assert provider.client_secret_source is not None
        return cls(
            token_url=provider.token_url or "",
            client_id=resolve_credential(provider.client_id_source),
            client_secret=resolve_credential(provider.client_secret_source),
            scopes=provider.scopes,
            extra_params=provider.extra_params,
            client_auth=provider.client_auth,
            timeout=request.timeout,
            verify_ssl=request.verify_ssl,
            default_expires_in=provider.expires_in,
        )

    @classmethod
    def validate_config(cls, provider: ProviderConfig) -> list[str]:
        errors: list[str] = []
        if not provider.token_url:
            errors.append("OAuth2 client_credentials requires 'token_url'")
        if not provider.client_id_source:
            errors.append("OAuth2 client_credentials requires 'client_id_source'")
        if not provider.client_secret_source:
            errors.append("OAuth2 client_credentials requires 'client_secret_source'")
        return errors

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, verify=self._verify_ssl)
        return self._client

    def _build_request(self) -> tuple[dict[str, str], Optional[httpx.BasicAuth]]:
        data: dict[str, str] = {"grant_type": "client_credentials"}
        auth: Optional[httpx.BasicAuth] = None
        if self.client_auth == "basic":
            auth = httpx.BasicAuth(self.client_id, self.client_secret)
        else:
            data["client_id"] = self.client_id
            data["client_secret"] = self.client_secret
        if self.scopes:
            data["scope"] = " ".join(self.scopes)
        for key, value in self.extra_params.items():
            data[key] = value
        return data, auth

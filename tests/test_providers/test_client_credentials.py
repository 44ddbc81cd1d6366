"""Tests for the OAuth2 Client Credentials acquirer."""

from __future__ import annotations

import base64
from typing import Any, Callable
from urllib.parse import parse_qs

import httpx
import pytest

from tokenkeeper.exceptions import AcquisitionError, ConfigError
from tokenkeeper.models import ProviderConfig, RequestConfig
from tokenkeeper.providers.client_credentials import ClientCredentialsAcquirer


TOKEN_URL = "https://auth.example.com/oauth/token"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(
    access_token: str = "fetched-token",
    expires_in: int = 3600,
    token_type: str = "Bearer",
    **extra: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "access_token": access_token,
        "expires_in": expires_in,
        "token_type": token_type,
    }
    data.update(extra)
    return data


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    @property
    def form(self) -> dict[str, str]:
        parsed = parse_qs(self.requests[-1].content.decode())
        return {key: values[0] for key, values in parsed.items()}


def _make_acquirer(
    responder: Callable[[httpx.Request], httpx.Response],
    **kwargs: Any,
) -> tuple[ClientCredentialsAcquirer, _Recorder]:
    recorder = _Recorder(responder)
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    options: dict[str, Any] = {
        "token_url": TOKEN_URL,
        "client_id": "my-client",
        "client_secret": "my-secret",
    }
    options.update(kwargs)
    return ClientCredentialsAcquirer(http_client=client, **options), recorder


# ---------------------------------------------------------------------------
# Token exchange
# ---------------------------------------------------------------------------


class TestAcquire:
    def test_provider_type(self) -> None:
        acquirer = ClientCredentialsAcquirer(TOKEN_URL, "id", "secret")
        assert acquirer.provider_type == "client_credentials"

    def test_posts_client_credentials_grant(self) -> None:
        acquirer, recorder = _make_acquirer(
            lambda request: httpx.Response(200, json=_token_response())
        )

        credential = acquirer.acquire()

        assert credential.access_token == "fetched-token"
        assert credential.token_type == "Bearer"
        assert credential.expires_in == 3600
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == TOKEN_URL
        assert request.headers["Accept"] == "application/json"
        assert recorder.form == {
            "grant_type": "client_credentials",
            "client_id": "my-client",
            "client_secret": "my-secret",
        }

    def test_sends_scopes_and_extra_params(self) -> None:
        acquirer, recorder = _make_acquirer(
            lambda request: httpx.Response(200, json=_token_response(scope="read write")),
            scopes=["read", "write"],
            extra_params={"audience": "https://api.example.com"},
        )

        credential = acquirer.acquire()

        assert recorder.form["scope"] == "read write"
        assert recorder.form["audience"] == "https://api.example.com"
        assert credential.scope == "read write"

    def test_basic_client_auth(self) -> None:
        acquirer, recorder = _make_acquirer(
            lambda request: httpx.Response(200, json=_token_response()),
            client_auth="basic",
        )

        acquirer.acquire()

        expected = base64.b64encode(b"my-client:my-secret").decode()
        assert recorder.requests[0].headers["Authorization"] == f"Basic {expected}"
        assert "client_secret" not in recorder.form
        assert "client_id" not in recorder.form

    def test_each_call_requests_a_new_token(self) -> None:
        tokens = iter(["first", "second"])
        acquirer, recorder = _make_acquirer(
            lambda request: httpx.Response(200, json=_token_response(next(tokens)))
        )

        assert acquirer.acquire().access_token == "first"
        assert acquirer.acquire().access_token == "second"
        assert len(recorder.requests) == 2

    def test_lowercase_bearer_normalised(self) -> None:
        acquirer, _ = _make_acquirer(
            lambda request: httpx.Response(200, json=_token_response(token_type="bearer"))
        )
        assert acquirer.acquire().authorization_value == "Bearer fetched-token"

    def test_missing_expires_in_uses_default(self) -> None:
        acquirer, _ = _make_acquirer(
            lambda request: httpx.Response(200, json={"access_token": "tok"}),
            default_expires_in=900,
        )
        credential = acquirer.acquire()
        assert credential.expires_in == 900
        assert credential.token_type == "Bearer"


# ---------------------------------------------------------------------------
# Failure mapping
# ---------------------------------------------------------------------------


class TestAcquireErrors:
    def test_error_status(self) -> None:
        acquirer, _ = _make_acquirer(
            lambda request: httpx.Response(401, json={"error": "invalid_client"})
        )

        with pytest.raises(AcquisitionError, match="status 401") as exc_info:
            acquirer.acquire()
        assert exc_info.value.status_code == 401
        assert "invalid_client" in str(exc_info.value)

    def test_error_body_is_truncated(self) -> None:
        acquirer, _ = _make_acquirer(lambda request: httpx.Response(500, text="x" * 5000))

        with pytest.raises(AcquisitionError) as exc_info:
            acquirer.acquire()
        assert len(str(exc_info.value)) < 600

    def test_network_error(self) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        acquirer, _ = _make_acquirer(_refuse)

        with pytest.raises(AcquisitionError, match="connection refused") as exc_info:
            acquirer.acquire()
        assert exc_info.value.status_code is None

    def test_invalid_json(self) -> None:
        acquirer, _ = _make_acquirer(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(AcquisitionError, match="not valid JSON"):
            acquirer.acquire()

    def test_missing_access_token(self) -> None:
        acquirer, _ = _make_acquirer(
            lambda request: httpx.Response(200, json={"token_type": "Bearer"})
        )

        with pytest.raises(AcquisitionError, match="access_token"):
            acquirer.acquire()

    def test_non_object_body(self) -> None:
        acquirer, _ = _make_acquirer(lambda request: httpx.Response(200, json=["tok"]))

        with pytest.raises(AcquisitionError, match="access_token"):
            acquirer.acquire()

    def test_malformed_expires_in(self) -> None:
        acquirer, _ = _make_acquirer(
            lambda request: httpx.Response(
                200, json={"access_token": "tok", "expires_in": "soon"}
            )
        )

        with pytest.raises(AcquisitionError, match="Malformed"):
            acquirer.acquire()


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_requires_token_url(self) -> None:
        with pytest.raises(ConfigError, match="token_url"):
            ClientCredentialsAcquirer("", "id", "secret")

    def test_rejects_unknown_client_auth(self) -> None:
        with pytest.raises(ConfigError, match="client_auth"):
            ClientCredentialsAcquirer(TOKEN_URL, "id", "secret", client_auth="jwt")

    def test_close_keeps_injected_client_open(self) -> None:
        client = httpx.Client()
        acquirer = ClientCredentialsAcquirer(TOKEN_URL, "id", "secret", http_client=client)
        acquirer.close()
        assert not client.is_closed
        client.close()

    def test_close_closes_own_client(self) -> None:
        acquirer = ClientCredentialsAcquirer(TOKEN_URL, "id", "secret")
        own = acquirer._get_client()
        acquirer.close()
        assert own.is_closed

    def test_from_config_resolves_sources(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CC_ID", "env-client")
        monkeypatch.setenv("CC_SECRET", "env-secret")
        provider = ProviderConfig(
            type="client_credentials",
            token_url=TOKEN_URL,
            client_id_source="env:CC_ID",
            client_secret_source="env:CC_SECRET",
            scopes=["read"],
            client_auth="basic",
            expires_in=120,
        )

        acquirer = ClientCredentialsAcquirer.from_config(provider, RequestConfig(timeout=5))

        assert acquirer.client_id == "env-client"
        assert acquirer.client_secret == "env-secret"
        assert acquirer.scopes == ["read"]
        assert acquirer.client_auth == "basic"
        assert acquirer.default_expires_in == 120

    def test_from_config_missing_secret_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CC_ID", "env-client")
        monkeypatch.delenv("CC_SECRET", raising=False)
        provider = ProviderConfig(
            type="client_credentials",
            token_url=TOKEN_URL,
            client_id_source="env:CC_ID",
            client_secret_source="env:CC_SECRET",
        )

        with pytest.raises(ConfigError, match="CC_SECRET"):
            ClientCredentialsAcquirer.from_config(provider, RequestConfig())

    def test_validate_config_lists_missing_fields(self) -> None:
        errors = ClientCredentialsAcquirer.validate_config(
            ProviderConfig(type="client_credentials")
        )
        assert len(errors) == 3
        assert any("token_url" in e for e in errors)
        assert any("client_id_source" in e for e in errors)
        assert any("client_secret_source" in e for e in errors)

"""Tests for the token, watch, request and status commands.

Every command builds a real token manager from a profile in an isolated
config directory. The ``static`` provider keeps the tests offline; the
``request`` command talks to an :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path
from unittest.mock import PropertyMock, patch

import httpx
import pytest

from tokenkeeper.app import app
from tokenkeeper.config import save_global_config, save_profile
from tokenkeeper.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_READY
from tokenkeeper.models import GlobalConfig, ManagerConfig, Profile, ProviderConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _static_profile(name: str = "svc", env_var: str = "SVC_TOKEN", **manager: float) -> Profile:
    return Profile(
        name=name,
        provider=ProviderConfig(type="static", source=f"env:{env_var}", expires_in=3600),
        manager=ManagerConfig(**manager),
    )


@pytest.fixture
def svc_profile(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> Profile:
    """A saved static profile named ``svc`` serving token ``abc``."""
    monkeypatch.setenv("SVC_TOKEN", "abc")
    profile = _static_profile()
    save_profile(profile)
    return profile


def _echo_auth(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"path": request.url.path, "authorization": request.headers.get("Authorization")},
    )


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


class TestTokenCommand:
    def test_prints_bare_token(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["token"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "abc"

    def test_header_flag(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["token", "--header"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Bearer abc"

    def test_json_output(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["--json", "token"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["access_token"] == "abc"
        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 3600

    def test_header_with_json_warns(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["--json", "token", "--header"])
        assert result.exit_code == 0, result.output
        assert "Warning: --header is ignored with --json." in result.output

    def test_verbose_reports_profile(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["--verbose", "--no-color", "token"])
        assert result.exit_code == 0, result.output
        assert "[debug] Profile 'svc': provider=static" in result.output

    def test_profile_flag_selects_profile(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OTHER_TOKEN", "xyz")
        save_profile(_static_profile("other", env_var="OTHER_TOKEN"))

        result = cli_runner.invoke(app, ["--profile", "other", "token"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "xyz"

    def test_env_selects_profile(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OTHER_TOKEN", "xyz")
        save_profile(_static_profile("other", env_var="OTHER_TOKEN"))
        monkeypatch.setenv("TOKENKEEPER_PROFILE", "other")

        result = cli_runner.invoke(app, ["token"])

        assert result.output.strip() == "xyz"

    def test_not_ready_exit_code(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("SVC_TOKEN")

        result = cli_runner.invoke(app, ["token", "--timeout", "0.2"])

        assert result.exit_code == EXIT_NOT_READY
        assert "No credential acquired" in result.output

    def test_no_profile(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["token"])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "No profile selected" in result.output

    def test_unknown_profile(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["--profile", "missing", "token"])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "not found" in result.output

    def test_invalid_env_override(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TOKENKEEPER_EXPIRY_BUFFER", "-10")
        result = cli_runner.invoke(app, ["token"])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "Invalid manager options" in result.output


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


class TestWatchCommand:
    def test_reports_each_renewal(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SVC_TOKEN", "abc")
        save_profile(_static_profile(renewal_interval=0.05))

        result = cli_runner.invoke(app, ["--json", "watch", "--max-renewals", "2"])

        assert result.exit_code == 0, result.output
        assert result.output.count('"generation"') == 2
        assert '"generation": 2' in result.output
        assert "Observed 2 renewal(s)." in result.output
        # Tokens are never printed by watch.
        assert "abc" not in result.output

    def test_generation_comes_from_manager(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SVC_TOKEN", "abc")
        save_profile(_static_profile(renewal_interval=0.05))

        with patch(
            "tokenkeeper.auth.manager.TokenManager.generation",
            new_callable=PropertyMock,
            return_value=7,
        ):
            result = cli_runner.invoke(app, ["--json", "watch", "--max-renewals", "1"])

        assert result.exit_code == 0, result.output
        assert '"generation": 7' in result.output
        assert '"generation": 1' not in result.output

    def test_timeout_without_token(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("SVC_TOKEN")

        result = cli_runner.invoke(app, ["watch", "--timeout", "0.2"])

        assert result.exit_code == EXIT_NOT_READY
        assert "No credential acquired" in result.output

    def test_rejects_zero_renewals(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["watch", "--max-renewals", "0"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# request
# ---------------------------------------------------------------------------


class TestRequestCommand:
    def test_sends_authorization_header(self, cli_runner, svc_profile) -> None:
        client_cls = functools.partial(httpx.Client, transport=httpx.MockTransport(_echo_auth))

        with patch("tokenkeeper.commands.token.httpx.Client", client_cls):
            result = cli_runner.invoke(
                app, ["--json", "request", "https://api.example.com/items"]
            )

        assert result.exit_code == 0, result.output
        assert '"authorization": "Bearer abc"' in result.output
        assert '"path": "/items"' in result.output

    def test_error_status_exit_code(self, cli_runner, svc_profile) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
        client_cls = functools.partial(httpx.Client, transport=transport)

        with patch("tokenkeeper.commands.token.httpx.Client", client_cls):
            result = cli_runner.invoke(app, ["request", "https://api.example.com/nope"])

        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "404" in result.output
        assert "missing" in result.output

    def test_transport_error(self, cli_runner, svc_profile) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client_cls = functools.partial(httpx.Client, transport=httpx.MockTransport(_refuse))

        with patch("tokenkeeper.commands.token.httpx.Client", client_cls):
            result = cli_runner.invoke(app, ["request", "https://api.example.com/items"])

        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "Request failed" in result.output


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


class TestStatusCommand:
    def test_reports_schedule_without_token(self, cli_runner, svc_profile) -> None:
        result = cli_runner.invoke(app, ["--json", "status"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["has_credential"] is True
        assert data["generation"] == 1
        assert data["token_type"] == "Bearer"
        assert "abc" not in result.output

    def test_not_ready(self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SVC_TOKEN")

        result = cli_runner.invoke(app, ["status", "--timeout", "0.2"])

        assert result.exit_code == EXIT_NOT_READY
        assert "has_credential\tFalse" in result.output


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


class TestGlobalOptions:
    def test_version(self, cli_runner) -> None:
        from tokenkeeper import __version__

        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"tokenkeeper {__version__}" in result.output

    def test_default_profile_from_global_config(
        self, cli_runner, svc_profile, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OTHER_TOKEN", "xyz")
        save_profile(_static_profile("other", env_var="OTHER_TOKEN"))
        save_global_config(GlobalConfig(default_profile="other"))

        result = cli_runner.invoke(app, ["token"])

        assert result.output.strip() == "xyz"

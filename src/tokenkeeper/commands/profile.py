"""Profile commands -- create, inspect, and remove token source profiles.

Provides the ``tokenkeeper profile`` sub-command group. A profile names one
token source (provider settings plus renewal schedule) and is stored as
``<config_dir>/profiles/<name>.json``. Secrets are referenced through
credential sources (``env:VAR``, ``file:/path``), never stored inline.

Typical workflow::

    tokenkeeper profile add billing --token-url https://auth.example.com/token \\
        --client-id-source env:BILLING_ID --client-secret-source env:BILLING_SECRET
    tokenkeeper profile show billing
    tokenkeeper --profile billing token
"""

from __future__ import annotations

from typing import Optional

import typer

from tokenkeeper.commands import exit_for
from tokenkeeper.exceptions import ConfigError, InvalidUsageError, TokenKeeperError
from tokenkeeper.output import emit, emit_table, hint, info, success


profile_app = typer.Typer(no_args_is_help=True)


def _require_profile(name: str) -> None:
    from tokenkeeper.config import profile_exists

    if not profile_exists(name):
        raise InvalidUsageError(f"Profile '{name}' not found. See 'tokenkeeper profile list'.")


@profile_app.command("list")
def profile_list() -> None:
    """List all profiles with their provider type and endpoint."""
    from tokenkeeper.config import list_profiles, load_global_config, load_profile

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        hint("Create one: tokenkeeper profile add NAME --token-url URL ...")
        return

    default = load_global_config().default_profile
    rows: list[list[str]] = []
    for name in names:
        try:
            profile = load_profile(name)
        except ConfigError as exc:
            rows.append([name, "?", f"invalid: {exc}", ""])
            continue
        endpoint = profile.provider.token_url or profile.provider.source or ""
        rows.append([name, profile.provider.type, endpoint, "*" if name == default else ""])
    emit_table(["name", "type", "endpoint", "default"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Show a profile's full configuration."""
    from tokenkeeper.config import load_profile

    try:
        _require_profile(name)
        emit(load_profile(name).model_dump(mode="json"))
    except TokenKeeperError as exc:
        raise exit_for(exc) from None


@profile_app.command("add")
def profile_add(
    name: str = typer.Argument(help="Profile name."),
    provider_type: str = typer.Option(
        "client_credentials", "--type", "-t", help="Provider type: client_credentials, static."
    ),
    token_url: Optional[str] = typer.Option(None, "--token-url", help="OAuth2 token endpoint."),
    client_id_source: Optional[str] = typer.Option(
        None, "--client-id-source", help="Client id source: env:VAR, file:/path, prompt."
    ),
    client_secret_source: Optional[str] = typer.Option(
        None, "--client-secret-source", help="Client secret source: env:VAR, file:/path, prompt."
    ),
    scopes: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    client_auth: str = typer.Option(
        "body", "--client-auth", help="Send client credentials in the form 'body' or as 'basic' auth."
    ),
    source: Optional[str] = typer.Option(
        None, "--source", help="Token source for the static provider."
    ),
    renewal_interval: Optional[float] = typer.Option(
        None, "--renewal-interval", help="Fixed renewal interval in seconds (<= 0 uses the reported expiry)."
    ),
    expiry_buffer: Optional[float] = typer.Option(
        None, "--expiry-buffer", help="Seconds to renew before the reported expiry."
    ),
    make_default: bool = typer.Option(
        False, "--default", help="Make this the default profile."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing profile."),
) -> None:
    """Create or replace a profile from command-line options.

    The provider settings are validated before anything is written, so a
    profile on disk is always loadable.
    """
    from pydantic import ValidationError

    from tokenkeeper.config import (
        build_manager_config,
        load_global_config,
        profile_exists,
        save_global_config,
        save_profile,
    )
    from tokenkeeper.models import Profile, ProviderConfig
    from tokenkeeper.providers import create_default_registry

    overrides: dict[str, float] = {}
    if renewal_interval is not None:
        overrides["renewal_interval"] = renewal_interval
    if expiry_buffer is not None:
        overrides["expiry_buffer"] = expiry_buffer

    try:
        if profile_exists(name) and not force:
            raise InvalidUsageError(f"Profile '{name}' already exists. Use --force to replace it.")
        try:
            provider = ProviderConfig(
                type=provider_type,
                token_url=token_url,
                client_id_source=client_id_source,
                client_secret_source=client_secret_source,
                scopes=scopes or [],
                client_auth=client_auth,
                source=source,
            )
            manager = build_manager_config(**overrides)
        except (ValidationError, ConfigError) as exc:
            raise InvalidUsageError(f"Invalid profile settings: {exc}") from exc

        problems = create_default_registry().validate(provider)
        if problems:
            raise InvalidUsageError("\n".join(problems))

        path = save_profile(Profile(name=name, provider=provider, manager=manager))
        if make_default:
            global_cfg = load_global_config()
            global_cfg.default_profile = name
            save_global_config(global_cfg)
    except TokenKeeperError as exc:
        raise exit_for(exc) from None
    success(f'Profile "{name}" saved to {path}.')
    hint(f"Try it: tokenkeeper --profile {name} token")


@profile_app.command("remove")
def profile_remove(
    name: str = typer.Argument(help="Profile name."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete a profile."""
    from tokenkeeper.config import delete_profile, load_global_config, save_global_config

    if not force and not typer.confirm(f"Delete profile '{name}'?"):
        info("Cancelled.")
        raise typer.Exit()

    try:
        _require_profile(name)
        delete_profile(name)
        global_cfg = load_global_config()
        if global_cfg.default_profile == name:
            global_cfg.default_profile = None
            save_global_config(global_cfg)
    except TokenKeeperError as exc:
        raise exit_for(exc) from None
    success(f'Profile "{name}" removed.')

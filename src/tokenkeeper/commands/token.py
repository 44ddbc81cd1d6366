"""Token commands -- fetch, watch, and use the managed credential.

Every command here builds a :class:`~tokenkeeper.auth.manager.TokenManager`
from the active profile, uses it, and shuts it down again::

    tokenkeeper token                 # print the current access token
    tokenkeeper token --header        # print "Bearer <token>"
    tokenkeeper watch                 # print every renewal until Ctrl-C
    tokenkeeper request https://api.example.com/items
    tokenkeeper status                # schedule and token metadata
"""

from __future__ import annotations

import queue
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Optional

import httpx
import typer

from tokenkeeper.commands import exit_for
from tokenkeeper.exceptions import TokenKeeperError
from tokenkeeper.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_READY
from tokenkeeper.models import Credential
from tokenkeeper.output import (
    OutputFormat,
    debug,
    emit,
    emit_line,
    error,
    get_output,
    info,
    success,
    warning,
)

if TYPE_CHECKING:
    from tokenkeeper.auth.manager import TokenManager


@contextmanager
def open_manager(ctx: typer.Context, **kwargs: Any) -> Iterator[TokenManager]:
    """Build and start a manager for the profile selected in *ctx*.

    Manager options come from the profile, then ``TOKENKEEPER_*`` environment
    overrides. *kwargs* are passed to :class:`TokenManager` (e.g.
    ``on_renewed``). The manager is shut down and the acquirer closed on
    exit.
    """
    from tokenkeeper.auth.manager import TokenManager
    from tokenkeeper.config import (
        build_manager_config,
        manager_overrides_from_env,
        resolve_profile,
    )
    from tokenkeeper.providers import create_default_registry

    cli_profile = ctx.obj.get("profile") if ctx.obj else None
    profile = resolve_profile(cli_profile)
    config = build_manager_config(profile.manager, **manager_overrides_from_env())
    debug(f"Profile {profile.name!r}: provider={profile.provider.type} {config!r}")
    acquirer = create_default_registry().create(profile)
    manager = TokenManager(acquirer, config, name=profile.name, **kwargs)
    try:
        yield manager
    finally:
        manager.shutdown()
        acquirer.close()


def _credential_record(credential: Credential, include_token: bool = False) -> dict[str, Any]:
    record: dict[str, Any] = {
        "token_type": credential.token_type,
        "scope": credential.scope,
        "expires_in": credential.expires_in,
        "obtained_at": credential.obtained_at.isoformat(),
    }
    if include_token:
        record["access_token"] = credential.access_token
    return record


def token_command(
    ctx: typer.Context,
    header: bool = typer.Option(
        False, "--header", "-H", help="Print the full Authorization header value."
    ),
    timeout: float = typer.Option(
        30.0, "--timeout", "-t", help="Seconds to wait for the token endpoint."
    ),
) -> None:
    """Acquire a token and print it to stdout.

    With ``--json`` the whole credential (token, type, scope, lifetime) is
    printed as an object.

    Example::

        export TOKEN=$(tokenkeeper token)
        curl -H "Authorization: $(tokenkeeper token --header)" https://api.example.com
    """
    try:
        with open_manager(ctx) as manager:
            manager.ensure_ready(timeout)
            credential = manager.current_credential()
            if credential is None:
                # Withdrawn between readiness and read; only possible on expiry.
                raise TokenKeeperError("Credential expired before it could be printed")
            as_json = get_output().format is OutputFormat.JSON
            if as_json and header:
                warning("--header is ignored with --json.")
            if as_json:
                emit(_credential_record(credential, include_token=True))
            elif header:
                emit_line(credential.authorization_value)
            else:
                emit_line(credential.access_token)
    except TokenKeeperError as exc:
        raise exit_for(exc) from None


def watch_command(
    ctx: typer.Context,
    max_renewals: Optional[int] = typer.Option(
        None,
        "--max-renewals",
        "-n",
        min=1,
        help="Exit after this many credentials have been published.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Fail if no token is acquired within this many seconds.",
    ),
) -> None:
    """Keep a token fresh in the foreground and report every renewal.

    Runs until interrupted (Ctrl-C) or until ``--max-renewals`` credentials
    have been published. Tokens themselves are never printed.
    """
    from tokenkeeper.auth.manager import compute_renewal_delay

    renewals: queue.Queue[tuple[Credential, int]] = queue.Queue()
    watched: list[TokenManager] = []

    def _on_renewed(credential: Credential) -> None:
        # Runs on the renewal thread right after publishing, so the
        # manager's generation is the one this credential was given.
        renewals.put((credential, watched[0].generation))

    count = 0
    try:
        with open_manager(ctx, on_renewed=_on_renewed, autostart=False) as manager:
            watched.append(manager)
            manager.start()
            info(f"Watching {manager!r}. Press Ctrl-C to stop.")
            if timeout is not None:
                manager.ensure_ready(timeout)
            while max_renewals is None or count < max_renewals:
                try:
                    credential, generation = renewals.get(timeout=1.0)
                except queue.Empty:
                    continue
                count += 1
                record = _credential_record(credential)
                record["generation"] = generation
                record["next_renewal_in"] = compute_renewal_delay(credential, manager.config)
                emit(record)
    except KeyboardInterrupt:
        info("\nStopped.")
    except TokenKeeperError as exc:
        raise exit_for(exc) from None
    success(f"Observed {count} renewal(s).")


def request_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to call with the managed token."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    timeout: float = typer.Option(
        30.0, "--timeout", "-t", help="Seconds to wait for the first token."
    ),
) -> None:
    """Send one authenticated request and print the response body.

    The request carries ``Authorization: <type> <token>`` from the manager;
    no extra call to the token endpoint is made per request.
    """
    from tokenkeeper.auth.transport import TokenManagerAuth

    try:
        with open_manager(ctx) as manager:
            manager.ensure_ready(timeout)
            with httpx.Client(
                auth=TokenManagerAuth(manager, wait_timeout=timeout),
                follow_redirects=True,
            ) as client:
                response = client.request(method.upper(), url)
    except TokenKeeperError as exc:
        raise exit_for(exc) from None
    except httpx.HTTPError as exc:
        error(f"Request failed: {exc}")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE) from None

    info(f"{response.status_code} {response.reason_phrase}")
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            emit(response.json())
        except ValueError:
            emit_line(response.text)
    elif response.text:
        emit_line(response.text)
    if response.is_error:
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)


def status_command(
    ctx: typer.Context,
    timeout: float = typer.Option(
        30.0, "--timeout", "-t", help="Seconds to wait for the first token."
    ),
) -> None:
    """Acquire a token and show the manager's schedule and token metadata."""
    try:
        with open_manager(ctx) as manager:
            ready = manager.wait_until_ready(timeout)
            status = manager.status()
    except TokenKeeperError as exc:
        raise exit_for(exc) from None
    emit(status.model_dump(mode="json"))
    if not ready:
        error(f"No credential acquired within {timeout} seconds.")
        raise typer.Exit(code=EXIT_NOT_READY)

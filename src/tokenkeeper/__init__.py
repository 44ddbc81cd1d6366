"""tokenkeeper -- keep one OAuth2 client-credentials token fresh for many callers.

A :class:`~tokenkeeper.auth.manager.TokenManager` runs a background thread
that acquires an access token, renews it on a schedule before it expires, and
hands the current value to any number of concurrent callers that attach it
to outgoing requests.

Typical usage::

    from tokenkeeper.auth import TokenManager
    from tokenkeeper.providers import ClientCredentialsAcquirer

    acquirer = ClientCredentialsAcquirer(
        token_url="https://auth.example.com/oauth/token",
        client_id="my-client",
        client_secret="s3cret",
    )
    with TokenManager(acquirer) as manager:
        manager.ensure_ready(timeout=30)
        headers = {}
        manager.apply_to(headers)

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware profile and settings management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

"""httpx integration for :class:`~tokenkeeper.auth.manager.TokenManager`.

:class:`TokenManagerAuth` plugs a token manager into :class:`httpx.Client`
and :class:`httpx.AsyncClient` so every request carries the current
``Authorization`` header without the caller touching the manager::

    with TokenManager(acquirer) as manager:
        with httpx.Client(auth=TokenManagerAuth(manager)) as client:
            client.get("https://api.example.com/items")

No request ever triggers a token fetch; the manager's renewal thread is the
only thing that talks to the token endpoint.
"""

from __future__ import annotations

from typing import AsyncGenerator, Generator, Optional

import httpx

from tokenkeeper.auth.manager import TokenManager


class TokenManagerAuth(httpx.Auth):
    """httpx auth flow that reads the header value from a token manager.

    Args:
        manager: The token manager supplying credentials.
        wait_timeout: Seconds to wait for the first credential before
            sending the request anyway (without a header). ``None`` waits
            indefinitely; ``0`` never waits.
    """

    def __init__(self, manager: TokenManager, wait_timeout: Optional[float] = 30.0) -> None:
        self._manager = manager
        self._wait_timeout = wait_timeout

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._wait_timeout != 0:
            self._manager.wait_until_ready(self._wait_timeout)
        self._manager.apply_to(request)
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if self._wait_timeout != 0:
            await self._manager.wait_until_ready_async(self._wait_timeout)
        self._manager.apply_to(request)
        yield request

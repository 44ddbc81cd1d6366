"""Canonical Pydantic models shared across all tokenkeeper modules.

The models fall into two groups:

**Runtime models** -- values produced and consumed by the token manager:
    :class:`Credential`, :class:`LifecycleState`, and :class:`ManagerStatus`.

**Configuration models** -- serialised as JSON (or YAML) in the user's
config directory:
    :class:`ManagerConfig`, :class:`ProviderConfig`, :class:`RequestConfig`,
    :class:`GlobalConfig`, and :class:`Profile`.

All models use Pydantic v2. :class:`Credential` is frozen so that a
published value can be shared between threads without copying.
"""

from __future__ import annotations

import enum
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Longest pause the renewal loop will sleep in one go; Event.wait() rejects
# anything above threading.TIMEOUT_MAX.
MAX_DURATION = min(366 * 24 * 3600.0, threading.TIMEOUT_MAX)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Runtime models ---


class Credential(BaseModel):
    """An access token plus the metadata reported by the token endpoint.

    Instances are immutable. Each successful acquisition creates a new
    ``Credential`` that supersedes the previous one; nothing ever edits a
    published value in place.

    Example::

        cred = Credential(access_token="abc", token_type="Bearer", expires_in=3600)
        assert cred.authorization_value == "Bearer abc"
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1, description="The bearer token itself")
    token_type: str = Field(default="Bearer", description="Authorization scheme")
    scope: Optional[str] = Field(default=None, description="Granted scope, if reported")
    expires_in: int = Field(
        default=0,
        ge=0,
        description="Reported lifetime in seconds (0 = unknown)",
    )
    obtained_at: datetime = Field(default_factory=_utcnow)

    @property
    def authorization_value(self) -> str:
        """The ``Authorization`` header value, e.g. ``"Bearer abc"``."""
        return f"{self.token_type} {self.access_token}"

    @property
    def expires_at(self) -> Optional[datetime]:
        """Wall-clock expiry time, or ``None`` when the lifetime is unknown."""
        if self.expires_in <= 0:
            return None
        try:
            return self.obtained_at + timedelta(seconds=self.expires_in)
        except OverflowError:
            return datetime.max.replace(tzinfo=timezone.utc)

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        default_expires_in: int = 3600,
    ) -> Credential:
        """Build a credential from a standard token-endpoint JSON body.

        Unknown fields (``refresh_token``, ``id_token``, vendor extensions)
        are ignored. A missing ``token_type`` means ``Bearer`` and a missing
        ``expires_in`` means *default_expires_in*.

        Raises:
            ValueError: If ``access_token`` is missing or a field has the
                wrong type.
        """
        token_type = str(data.get("token_type") or "Bearer")
        # Some servers send lowercase "bearer"; the header scheme is
        # case-insensitive but most APIs expect the canonical spelling.
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        scope = data.get("scope")
        if isinstance(scope, list):
            scope = " ".join(str(s) for s in scope)
        expires_in = data.get("expires_in")
        return cls(
            access_token=data.get("access_token", ""),
            token_type=token_type,
            scope=scope or None,
            expires_in=default_expires_in if expires_in is None else int(expires_in),
        )


class LifecycleState(str, enum.Enum):
    """States of the token manager's renewal loop."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    PUBLISHED = "published"
    SCHEDULED_WAIT = "scheduled_wait"
    RETRY_BACKOFF = "retry_backoff"
    STOPPED = "stopped"


class ManagerStatus(BaseModel):
    """Point-in-time view of a token manager, safe to print or serialise.

    Never contains the token itself.
    """

    state: LifecycleState
    generation: int
    has_credential: bool
    token_type: Optional[str] = None
    scope: Optional[str] = None
    obtained_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    next_renewal_in: Optional[float] = None
    consecutive_failures: int = 0


# --- Configuration models ---


class ManagerConfig(BaseModel):
    """Renewal schedule and retry settings for a token manager.

    All durations are in seconds, finite, and at most :data:`MAX_DURATION`
    (a little over a year). When ``renewal_interval`` is positive it is
    used as a fixed renewal schedule regardless of the lifetime the token
    endpoint reports. Otherwise the manager renews ``expiry_buffer`` seconds
    before the reported expiry, never sooner than ``min_renewal_delay``.

    Validation happens when the model is built, so a bad value surfaces at
    construction rather than inside the renewal thread.
    """

    model_config = ConfigDict(validate_assignment=True, allow_inf_nan=False)

    renewal_interval: float = Field(
        default=59 * 60,
        le=MAX_DURATION,
        description="Fixed renewal interval; <= 0 renews from the reported expiry",
    )
    expiry_buffer: float = Field(
        default=60.0,
        ge=0,
        le=MAX_DURATION,
        description="Safety margin subtracted from the reported expiry",
    )
    retry_delay: float = Field(
        default=5.0,
        gt=0,
        le=MAX_DURATION,
        description="Pause between failed acquisition attempts",
    )
    min_renewal_delay: float = Field(
        default=5.0,
        gt=0,
        le=MAX_DURATION,
        description="Lower bound for an expiry-based schedule",
    )
    shutdown_timeout: float = Field(
        default=5.0,
        ge=0,
        le=MAX_DURATION,
        description="How long shutdown() waits for the renewal thread",
    )

    @property
    def uses_fixed_interval(self) -> bool:
        return self.renewal_interval > 0


class ProviderConfig(BaseModel):
    """Where and how a profile obtains its credential.

    The ``type`` field selects the acquirer (``client_credentials`` or
    ``static``); the remaining fields supply type-specific parameters.
    Secrets are never stored inline: ``*_source`` fields hold a credential
    source descriptor such as ``env:CLIENT_SECRET`` or ``file:~/.secret``.

    Example::

        ProviderConfig(
            type="client_credentials",
            token_url="https://auth.example.com/oauth/token",
            client_id_source="env:CLIENT_ID",
            client_secret_source="env:CLIENT_SECRET",
            scopes=["read", "write"],
        )
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(description="Acquirer type: client_credentials, static")
    # client_credentials
    token_url: Optional[str] = None
    client_id_source: Optional[str] = None
    client_secret_source: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    extra_params: dict[str, str] = Field(default_factory=dict)
    client_auth: str = Field(
        default="body",
        description="How client credentials are sent: body or basic",
    )
    # static
    source: Optional[str] = Field(
        default=None, description="Credential source for a pre-issued token"
    )
    token_type: str = "Bearer"
    expires_in: int = Field(default=3600, ge=0)

    @field_validator("client_auth")
    @classmethod
    def _check_client_auth(cls, value: str) -> str:
        if value not in ("body", "basic"):
            raise ValueError("client_auth must be 'body' or 'basic'")
        return value


class RequestConfig(BaseModel):
    """HTTP settings used when talking to the token endpoint."""

    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/tokenkeeper/config.json``."""

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True


class Profile(BaseModel):
    """A named token source, stored as one file under ``profiles/``.

    Bundles the provider settings, the renewal schedule, and the HTTP
    settings needed to keep one credential fresh.
    """

    name: str
    provider: ProviderConfig
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)

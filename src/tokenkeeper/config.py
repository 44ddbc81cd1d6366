"""Where tokenkeeper keeps its files, and how it reads them back.

Layout on Linux and the BSDs follows the XDG base directories::

    $XDG_CONFIG_HOME/tokenkeeper/config.json          global settings
    $XDG_CONFIG_HOME/tokenkeeper/profiles/NAME.json   one token source each
    $XDG_DATA_HOME/tokenkeeper/logs/                  crash reports

Other platforms keep everything under ``~/.tokenkeeper`` (crash reports in
``~/.tokenkeeper/logs/``).

Profiles may also be hand-written as ``NAME.yaml``; tokenkeeper itself
always writes JSON, through :func:`_atomic_write`, so a crash mid-write
never leaves a truncated file behind.

Secrets never live in these files. A profile stores a *source* such as
``env:BILLING_SECRET`` and :func:`resolve_credential` looks the value up
when the token is requested.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from tokenkeeper.exceptions import ConfigError
from tokenkeeper.models import GlobalConfig, ManagerConfig, Profile

_APP_DIR = "tokenkeeper"
_PROFILE_SUFFIXES = (".json", ".yaml", ".yml")

PROFILE_ENV_VAR = "TOKENKEEPER_PROFILE"

# environment variable -> ManagerConfig field
ENV_MANAGER_OPTIONS = {
    "TOKENKEEPER_RENEWAL_INTERVAL": "renewal_interval",
    "TOKENKEEPER_EXPIRY_BUFFER": "expiry_buffer",
    "TOKENKEEPER_RETRY_DELAY": "retry_delay",
}


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _home_fallback() -> Path:
    return Path.home() / f".{_APP_DIR}"


def _xdg_dir(variable: str, default: str) -> Path:
    root = os.environ.get(variable) or str(Path.home() / default)
    return Path(root) / _APP_DIR


def _existing(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json`` and ``profiles/``. Created on demand."""
    if _is_xdg_platform():
        return _existing(_xdg_dir("XDG_CONFIG_HOME", ".config"))
    return _existing(_home_fallback())


def get_data_dir() -> Path:
    """Directory for runtime data such as ``logs/``. Created on demand."""
    if _is_xdg_platform():
        return _existing(_xdg_dir("XDG_DATA_HOME", os.path.join(".local", "share")))
    return _existing(_home_fallback())


def get_profiles_dir() -> Path:
    return _existing(get_config_dir() / "profiles")


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _atomic_write(path: Path, text: str) -> None:
    """Replace *path* with *text* in one rename.

    The new content is staged in a sibling file created by
    :func:`tempfile.mkstemp` (mode ``0o600``), synced to disk, then moved
    over *path* with :func:`os.replace`. On any failure the staging file is
    removed and *path* is left as it was.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle, staging = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(text)
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(staging, path)
    except BaseException:
        if os.path.exists(staging):
            os.unlink(staging)
        raise


def _dump_json(path: Path, data: Any) -> None:
    _atomic_write(path, json.dumps(data, indent=2) + "\n")


def _parse(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


# ---------------------------------------------------------------------------
# Global settings
# ---------------------------------------------------------------------------


def load_global_config() -> GlobalConfig:
    """Read ``config.json``; a missing file means all defaults.

    Raises:
        ConfigError: The file exists but is not valid.
    """
    path = get_config_dir() / "config.json"
    if not path.exists():
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate(_parse(path))
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    _dump_json(get_config_dir() / "config.json", config.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def _locate_profile(name: str) -> Optional[Path]:
    directory = get_profiles_dir()
    candidates = (directory / (name + suffix) for suffix in _PROFILE_SUFFIXES)
    return next((path for path in candidates if path.is_file()), None)


def _require_profile(name: str) -> Path:
    path = _locate_profile(name)
    if path is None:
        raise ConfigError(f"Profile '{name}' not found in {get_profiles_dir()}")
    return path


def list_profiles() -> list[str]:
    """Names of every profile file, sorted, each listed once."""
    names = {
        entry.stem
        for entry in get_profiles_dir().iterdir()
        if entry.suffix in _PROFILE_SUFFIXES and entry.is_file()
    }
    return sorted(names)


def profile_exists(name: str) -> bool:
    return _locate_profile(name) is not None


def load_profile(name: str) -> Profile:
    """Read and validate profile *name*.

    When both ``NAME.json`` and ``NAME.yaml`` exist the JSON file is used. A
    file that omits ``name`` takes it from the file name.

    Raises:
        ConfigError: The profile is missing or its content is invalid.
    """
    path = _require_profile(name)
    try:
        raw = _parse(path)
        if isinstance(raw, dict) and "name" not in raw:
            raw["name"] = name
        return Profile.model_validate(raw)
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> Path:
    """Write *profile* to ``profiles/<name>.json`` and return that path."""
    path = get_profiles_dir() / f"{profile.name}.json"
    _dump_json(path, profile.model_dump(mode="json"))
    return path


def delete_profile(name: str) -> None:
    """Remove profile *name* from disk.

    Raises:
        ConfigError: There is no such profile.
    """
    _require_profile(name).unlink()


def resolve_profile(cli_profile: Optional[str] = None) -> Profile:
    """Pick and load the profile a command should use.

    The first of these that names a profile wins: the ``--profile`` flag,
    ``$TOKENKEEPER_PROFILE``, ``default_profile`` from ``config.json``. If
    none does and ``auto_select_single_profile`` is on, a lone profile on
    disk is used.

    Raises:
        ConfigError: Nothing selects a profile, or the selected one is
            missing or invalid.
    """
    settings = load_global_config()
    chosen = cli_profile or os.environ.get(PROFILE_ENV_VAR) or settings.default_profile
    if chosen is None and settings.auto_select_single_profile:
        available = list_profiles()
        chosen = available[0] if len(available) == 1 else None
    if chosen is None:
        raise ConfigError(
            "No profile selected. Pass --profile, set TOKENKEEPER_PROFILE, "
            "or create one with 'tokenkeeper profile add'."
        )
    return load_profile(chosen)


# ---------------------------------------------------------------------------
# Manager options
# ---------------------------------------------------------------------------


def build_manager_config(
    base: Optional[ManagerConfig] = None,
    **overrides: Any,
) -> ManagerConfig:
    """Layer *overrides* onto *base* (or the defaults) and validate the result.

    Overrides are applied in the order given. Nothing is deferred: an
    unknown option or an out-of-range value fails here, before any thread
    is started.

    Raises:
        ConfigError: An option is unknown or a value is invalid.
    """
    fields = ManagerConfig.model_fields
    merged = {} if base is None else base.model_dump()
    for option, value in overrides.items():
        if option not in fields:
            raise ConfigError(
                f"Unknown manager option '{option}'. Known options: {', '.join(sorted(fields))}"
            )
        merged[option] = value
    try:
        return ManagerConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid manager options: {exc}") from exc


def manager_overrides_from_env() -> dict[str, float]:
    """Collect manager options set through ``TOKENKEEPER_*`` variables.

    Empty variables are ignored.

    Raises:
        ConfigError: A variable holds something other than a number.
    """
    found: dict[str, float] = {}
    for variable, option in ENV_MANAGER_OPTIONS.items():
        raw = os.environ.get(variable, "")
        if not raw:
            continue
        try:
            found[option] = float(raw)
        except ValueError:
            raise ConfigError(f"{variable} must be a number of seconds, got: {raw!r}") from None
    return found


# ---------------------------------------------------------------------------
# Secret sources
# ---------------------------------------------------------------------------


def _secret_from_env(name: str) -> str:
    if name not in os.environ:
        raise ConfigError(f"Environment variable '{name}' is not set (source: env:{name})")
    return os.environ[name]


def _secret_from_file(location: str) -> str:
    path = Path(location).expanduser()
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        raise ConfigError(f"Credential file not found: {path} (source: file:{location})") from None
    except OSError as exc:
        raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc


def _secret_from_prompt() -> str:
    if not sys.stdin.isatty():
        raise ConfigError("Cannot prompt for a secret: stdin is not a TTY (source: prompt)")
    return getpass.getpass("Enter credential: ")


def resolve_credential(source: str) -> str:
    """Return the secret that *source* points at.

    ``env:NAME``
        The value of environment variable ``NAME``.
    ``file:PATH``
        The contents of ``PATH`` with surrounding whitespace removed.
    ``prompt``
        Typed in by the user without echo. Needs an interactive stdin.

    Raises:
        ConfigError: The source is malformed or its value is unavailable.
    """
    if source == "prompt":
        return _secret_from_prompt()
    scheme, sep, rest = source.partition(":")
    if sep and scheme == "env":
        return _secret_from_env(rest)
    if sep and scheme == "file":
        return _secret_from_file(rest)
    raise ConfigError(f"Unknown credential source format: {source}")

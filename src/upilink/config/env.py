"""Typed readers for ``UPILINK_*`` environment variables."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


def _env(name: str) -> str | None:
    # blank counts as unset
    value = (os.getenv(name) or "").strip()
    return value or None


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return the named variables, raising once for every one that is unset or blank."""

    found = {name: _env(name) for name in names}
    if absent := sorted(name for name, value in found.items() if value is None):
        raise MissingConfigurationError(f"Missing required settings: {', '.join(absent)}")
    return {name: value for name, value in found.items() if value is not None}


def env_choice(name: str, choices: Sequence[str], *, default: str) -> str:
    """Return a lower-cased environment value restricted to ``choices``."""

    value = (_env(name) or default).lower()
    if value not in choices:
        allowed = ", ".join(choices)
        raise ConfigurationError(f"Invalid {name}: {os.getenv(name)!r} (expected one of {allowed})")
    return value


def env_positive_int(name: str, *, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer for {name}: {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value

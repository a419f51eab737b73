"""Environment helpers shared across runtime modules."""

from __future__ import annotations

from typing import Mapping, MutableMapping
import os

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def env_flag(value: str | None, *, default: bool = False) -> bool:
    token = _normalize(value)
    if not token:
        return default
    if token in TRUTHY:
        return True
    if token in FALSY:
        return False
    return default


def env_float(value: str | None, *, name: str, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def env_int(value: str | None, *, name: str, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def fixture_mode_enabled(
    env: Mapping[str, str] | MutableMapping[str, str] | None = None,
    *,
    default: bool = False,
) -> bool:
    data = os.environ if env is None else env
    return env_flag(data.get("HYPERREAL_USE_FIXTURE"), default=default)


__all__ = [
    "TRUTHY",
    "FALSY",
    "env_flag",
    "env_float",
    "env_int",
    "fixture_mode_enabled",
]

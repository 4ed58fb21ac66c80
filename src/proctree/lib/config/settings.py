"""Operational config loader for proctree."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import cast

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "proctree.toml"
PYPROJECT_FILENAME = "pyproject.toml"


@dataclass(frozen=True, slots=True)
class ProctreeConfig:
    """Resolved operational configuration for proctree."""

    default_signal: str = "SIGTERM"
    kill_grace_seconds: float = 2.0
    taskkill_command: str = "taskkill"
    taskkill_timeout_seconds: float = 5.0
    shell: str | None = None


_SECTION_KEY_MAP: dict[str, dict[str, str]] = {
    "terminate": {
        "signal": "default_signal",
        "default_signal": "default_signal",
        "kill_grace_seconds": "kill_grace_seconds",
        "grace_seconds": "kill_grace_seconds",
    },
    "runner": {
        "shell": "shell",
    },
    "tools": {
        "taskkill": "taskkill_command",
        "taskkill_command": "taskkill_command",
        "taskkill_timeout_seconds": "taskkill_timeout_seconds",
    },
}

_TOP_LEVEL_KEY_MAP: dict[str, str] = {field.name: field.name for field in fields(ProctreeConfig)}

_ENV_OVERRIDE_MAP: dict[str, str] = {
    "PROCTREE_DEFAULT_SIGNAL": "default_signal",
    "PROCTREE_KILL_GRACE_SECONDS": "kill_grace_seconds",
    "PROCTREE_TASKKILL_COMMAND": "taskkill_command",
    "PROCTREE_TASKKILL_TIMEOUT_SECONDS": "taskkill_timeout_seconds",
    "PROCTREE_SHELL": "shell",
}

_FLOAT_FIELDS = frozenset({"kill_grace_seconds", "taskkill_timeout_seconds"})


def _coerce_file_value(*, field_name: str, raw_value: object, source: str) -> object:
    if field_name in _FLOAT_FIELDS:
        if isinstance(raw_value, bool) or not isinstance(raw_value, int | float):
            raise ValueError(
                f"Invalid value for '{source}': expected float, got "
                f"{type(raw_value).__name__} ({raw_value!r})."
            )
        if raw_value < 0:
            raise ValueError(f"Invalid value for '{source}': expected non-negative number.")
        return float(raw_value)

    if not isinstance(raw_value, str):
        raise ValueError(
            f"Invalid value for '{source}': expected str, got "
            f"{type(raw_value).__name__} ({raw_value!r})."
        )
    normalized = raw_value.strip()
    if not normalized:
        raise ValueError(f"Invalid value for '{source}': expected non-empty string.")
    return normalized


def _coerce_env_value(*, field_name: str, raw_value: str, env_name: str) -> object:
    if field_name in _FLOAT_FIELDS:
        try:
            value = float(raw_value.strip())
        except ValueError as error:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected float, got {raw_value!r}."
            ) from error
        if value < 0:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected non-negative number."
            )
        return value

    normalized = raw_value.strip()
    if not normalized:
        raise ValueError(
            f"Invalid environment override '{env_name}': expected non-empty string."
        )
    return normalized


def _default_values() -> dict[str, object]:
    defaults = ProctreeConfig()
    return {field.name: getattr(defaults, field.name) for field in fields(ProctreeConfig)}


def _apply_toml_payload(
    *,
    values: dict[str, object],
    payload: dict[str, object],
    path: Path,
) -> None:
    for key, raw_value in payload.items():
        section_map = _SECTION_KEY_MAP.get(key)
        if section_map is not None:
            if not isinstance(raw_value, dict):
                raise ValueError(f"Invalid value for '{key}' in '{path}': expected table.")
            for section_key, section_value in cast("dict[str, object]", raw_value).items():
                field_name = section_map.get(section_key)
                if field_name is None:
                    logger.warning(
                        "Ignoring unknown proctree config key '%s.%s'.",
                        key,
                        section_key,
                    )
                    continue
                values[field_name] = _coerce_file_value(
                    field_name=field_name,
                    raw_value=section_value,
                    source=f"{key}.{section_key}",
                )
            continue

        field_name = _TOP_LEVEL_KEY_MAP.get(key)
        if field_name is None:
            logger.warning("Ignoring unknown proctree config key '%s'.", key)
            continue
        values[field_name] = _coerce_file_value(
            field_name=field_name,
            raw_value=raw_value,
            source=key,
        )


def _apply_env_overrides(values: dict[str, object]) -> None:
    for env_name, field_name in _ENV_OVERRIDE_MAP.items():
        raw_value = os.getenv(env_name)
        if raw_value is None:
            continue
        values[field_name] = _coerce_env_value(
            field_name=field_name,
            raw_value=raw_value,
            env_name=env_name,
        )


def _build_config(values: dict[str, object]) -> ProctreeConfig:
    return ProctreeConfig(
        default_signal=cast("str", values["default_signal"]),
        kill_grace_seconds=cast("float", values["kill_grace_seconds"]),
        taskkill_command=cast("str", values["taskkill_command"]),
        taskkill_timeout_seconds=cast("float", values["taskkill_timeout_seconds"]),
        shell=cast("str | None", values["shell"]),
    )


def _read_payload(path: Path) -> dict[str, object] | None:
    payload_obj = tomllib.loads(path.read_text(encoding="utf-8"))
    payload = cast("dict[str, object]", payload_obj)
    if path.name != PYPROJECT_FILENAME:
        return payload

    tool = payload.get("tool")
    if not isinstance(tool, dict):
        return None
    section = cast("dict[str, object]", tool).get("proctree")
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ValueError(f"Invalid value for 'tool.proctree' in '{path}': expected table.")
    return cast("dict[str, object]", section)


def resolve_config_path(root: Path | None = None) -> Path | None:
    """Return the first config file found under `root` (default: cwd).

    Precedence:
    1. `proctree.toml`
    2. `pyproject.toml` carrying a `[tool.proctree]` table
    """

    base = (root or Path.cwd()).resolve()
    candidate = base / CONFIG_FILENAME
    if candidate.is_file():
        return candidate
    pyproject = base / PYPROJECT_FILENAME
    if pyproject.is_file():
        return pyproject
    return None


def load_config(path: Path | None = None) -> ProctreeConfig:
    """Load a proctree TOML config and apply `PROCTREE_*` environment overrides."""

    values = _default_values()
    resolved = path if path is not None else resolve_config_path()
    if resolved is not None and resolved.is_file():
        payload = _read_payload(resolved)
        if payload is not None:
            _apply_toml_payload(values=values, payload=payload, path=resolved)

    _apply_env_overrides(values)
    return _build_config(values)

"""CLI output formatting utilities."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Literal, cast

OutputFormat = Literal["text", "json"]


@dataclass(frozen=True, slots=True)
class OutputConfig:
    format: OutputFormat


def normalize_output_format(*, requested: str | None, json_mode: bool) -> OutputFormat:
    if json_mode:
        return "json"
    if requested is None or requested == "":
        return "text"
    normalized = requested.strip().lower()
    if normalized in {"text", "json"}:
        return cast("OutputFormat", normalized)
    raise SystemExit("--format must be one of: text, json")


def to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def emit(value: Any, config: OutputConfig, *, text: str | None = None) -> None:
    """Emit one payload according to the configured output mode."""

    if config.format == "json":
        print(json.dumps(to_jsonable(value), sort_keys=True))
        return
    if text is not None:
        if text:
            print(text)
        return
    print(json.dumps(to_jsonable(value), sort_keys=True, indent=2))

"""Configuration loading tests."""

from __future__ import annotations

import logging
import textwrap
from pathlib import Path

import pytest

from proctree.lib.config.settings import ProctreeConfig, load_config, resolve_config_path


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert resolve_config_path() is None
    assert load_config() == ProctreeConfig()


def test_sections_are_mapped_onto_fields(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "proctree.toml",
        textwrap.dedent(
            """
            [terminate]
            signal = "SIGINT"
            kill_grace_seconds = 5

            [runner]
            shell = "/bin/bash"

            [tools]
            taskkill = "taskkill.exe"
            taskkill_timeout_seconds = 0.5
            """
        ),
    )

    config = load_config(path)

    assert config.default_signal == "SIGINT"
    assert config.kill_grace_seconds == 5.0
    assert isinstance(config.kill_grace_seconds, float)
    assert config.shell == "/bin/bash"
    assert config.taskkill_command == "taskkill.exe"
    assert config.taskkill_timeout_seconds == 0.5


def test_top_level_keys_are_accepted(tmp_path: Path) -> None:
    path = _write(tmp_path / "proctree.toml", 'default_signal = "SIGKILL"\n')

    assert load_config(path).default_signal == "SIGKILL"


def test_pyproject_tool_table_is_discovered(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _write(
        tmp_path / "pyproject.toml",
        '[project]\nname = "demo"\n\n[tool.proctree.terminate]\nkill_grace_seconds = 9\n',
    )
    monkeypatch.chdir(tmp_path)

    assert resolve_config_path() == (tmp_path / "pyproject.toml").resolve()
    assert load_config().kill_grace_seconds == 9.0


def test_pyproject_without_tool_table_uses_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path / "pyproject.toml", '[project]\nname = "demo"\n')

    assert load_config(path) == ProctreeConfig()


def test_proctree_toml_wins_over_pyproject(tmp_path: Path) -> None:
    _write(tmp_path / "pyproject.toml", "[tool.proctree]\ntaskkill_command = \"a\"\n")
    _write(tmp_path / "proctree.toml", 'taskkill_command = "b"\n')

    assert resolve_config_path(tmp_path) == (tmp_path / "proctree.toml").resolve()


def test_env_overrides_file_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path / "proctree.toml", "[terminate]\nkill_grace_seconds = 5\n")
    monkeypatch.setenv("PROCTREE_KILL_GRACE_SECONDS", "0.25")
    monkeypatch.setenv("PROCTREE_DEFAULT_SIGNAL", " SIGHUP ")

    config = load_config(path)

    assert config.kill_grace_seconds == 0.25
    assert config.default_signal == "SIGHUP"


@pytest.mark.parametrize(
    "text",
    [
        pytest.param('[terminate]\nkill_grace_seconds = "soon"\n', id="float-as-string"),
        pytest.param("[terminate]\nkill_grace_seconds = true\n", id="float-as-bool"),
        pytest.param("[terminate]\nkill_grace_seconds = -1\n", id="negative-grace"),
        pytest.param("[tools]\ntaskkill = 3\n", id="str-as-int"),
        pytest.param('[tools]\ntaskkill = "  "\n', id="blank-string"),
        pytest.param('terminate = "SIGTERM"\n', id="section-not-table"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, text: str) -> None:
    path = _write(tmp_path / "proctree.toml", text)

    with pytest.raises(ValueError):
        load_config(path)


def test_invalid_env_override_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PROCTREE_TASKKILL_TIMEOUT_SECONDS", "later")

    with pytest.raises(ValueError, match="PROCTREE_TASKKILL_TIMEOUT_SECONDS"):
        load_config(tmp_path / "absent.toml")


def test_unknown_keys_warn(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path / "proctree.toml", "mystery = 2\n\n[terminate]\nbogus = 1\n")

    with caplog.at_level(logging.WARNING, logger="proctree.lib.config.settings"):
        config = load_config(path)

    assert config == ProctreeConfig()
    assert "terminate.bogus" in caplog.text
    assert "mystery" in caplog.text

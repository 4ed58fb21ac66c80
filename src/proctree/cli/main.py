"""Cyclopts CLI entry point for proctree."""

from __future__ import annotations

import asyncio
import sys
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

from cyclopts import App, Parameter

from proctree import __version__
from proctree.cli.output import OutputConfig, normalize_output_format
from proctree.cli.output import emit as emit_output
from proctree.lib.config.settings import ProctreeConfig, load_config
from proctree.lib.exec.errors import CommandTimeoutError, NonZeroExitError, SpawnError
from proctree.lib.exec.process_table import default_process_table
from proctree.lib.exec.runner import CommandResult, run
from proctree.lib.exec.signals import parse_signal, signal_to_exit_code
from proctree.lib.exec.terminator import collect_descendants, kill_process_tree
from proctree.lib.exec.timeout import run_with_timeout
from proctree.lib.logging import command_output_logger, configure_logging
from proctree.lib.types import ProcessHandle

if TYPE_CHECKING:
    from collections.abc import Sequence

    from proctree.lib.ports import LoggerSink


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    """Top-level options that apply to all commands."""

    output: OutputConfig
    config_path: Path | None = None


_GLOBAL_OPTIONS: ContextVar[GlobalOptions | None] = ContextVar("_GLOBAL_OPTIONS", default=None)


def get_global_options() -> GlobalOptions:
    default = GlobalOptions(output=OutputConfig(format="text"))
    return _GLOBAL_OPTIONS.get() or default


def emit(payload: object, *, text: str | None = None) -> None:
    emit_output(payload, get_global_options().output, text=text)


def _config() -> ProctreeConfig:
    return load_config(get_global_options().config_path)


def _extract_global_options(argv: Sequence[str]) -> tuple[list[str], GlobalOptions, int]:
    json_mode = False
    output_format: str | None = None
    config_path: Path | None = None
    verbosity = 0
    cleaned: list[str] = []

    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "--":
            cleaned.extend(argv[i:])
            break
        if arg == "--json":
            json_mode = True
            i += 1
            continue
        if arg in {"--verbose", "-v"}:
            verbosity += 1
            i += 1
            continue
        if arg == "-vv":
            verbosity += 2
            i += 1
            continue
        if arg in {"--format", "--config"}:
            if i + 1 >= len(argv):
                raise SystemExit(f"{arg} requires a value")
            if arg == "--format":
                output_format = argv[i + 1]
            else:
                config_path = Path(argv[i + 1]).expanduser()
            i += 2
            continue
        if arg.startswith("--format="):
            output_format = arg.partition("=")[2]
            i += 1
            continue
        if arg.startswith("--config="):
            config_path = Path(arg.partition("=")[2]).expanduser()
            i += 1
            continue

        cleaned.append(arg)
        i += 1

    resolved = normalize_output_format(requested=output_format, json_mode=json_mode)
    return (
        cleaned,
        GlobalOptions(output=OutputConfig(format=resolved), config_path=config_path),
        verbosity,
    )


app = App(
    name="proctree",
    help="Run shell commands and tear down process trees.",
    version=__version__,
    help_formatter="plain",
)


def _result_payload(result: CommandResult) -> dict[str, object]:
    return {
        "command": result.command,
        "exit_code": result.exit_code,
        "signal": result.signal.name if result.signal is not None else None,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "error": result.error,
    }


def _exit_status(result: CommandResult) -> int:
    if result.signal is not None:
        return signal_to_exit_code(result.signal)
    if result.exit_code is None:
        return 1
    return result.exit_code


@app.command(name="run")
def run_command(
    command: Annotated[str, Parameter(help="Shell command to run.")],
    cwd: Annotated[
        str | None,
        Parameter(name="--cwd", help="Working directory for the command."),
    ] = None,
    timeout: Annotated[
        float | None,
        Parameter(name="--timeout", help="Kill the process tree after this many seconds."),
    ] = None,
    log_output: Annotated[
        bool,
        Parameter(
            name="--log-output",
            help="Forward output through the logger instead of passing it through.",
        ),
    ] = False,
) -> None:
    """Run one shell command and mirror its exit status."""

    config = _config()
    json_mode = get_global_options().output.format == "json"
    sink: LoggerSink | None = None
    if log_output or json_mode:
        # Keep stdout free for the JSON payload.
        sink = command_output_logger(json_mode=json_mode)

    resolved_cwd = Path(cwd).expanduser() if cwd is not None else None
    try:
        if timeout is not None:
            result = asyncio.run(
                run_with_timeout(
                    command,
                    timeout_seconds=timeout,
                    kill_grace_seconds=config.kill_grace_seconds,
                    logger=sink,
                    cwd=resolved_cwd,
                    executable=config.shell,
                    table=default_process_table(config),
                )
            )
        else:
            result = asyncio.run(
                run(command, logger=sink, cwd=resolved_cwd, executable=config.shell)
            )
    except CommandTimeoutError as exc:
        if json_mode:
            emit(_result_payload(exc.result))
        raise
    except NonZeroExitError as exc:
        if json_mode:
            emit(_result_payload(exc.result))
        raise SystemExit(_exit_status(exc.result)) from None
    except SpawnError as exc:
        if json_mode:
            emit(_result_payload(exc.result))
        raise

    if json_mode:
        emit(_result_payload(result))


@app.command(name="kill")
def kill_command(
    pid: Annotated[int, Parameter(help="Root process id of the tree.")],
    signal_name: Annotated[
        str | None,
        Parameter(name="--signal", help="Signal to send (default from config: SIGTERM)."),
    ] = None,
) -> None:
    """Terminate a process and all of its descendants."""

    config = _config()
    sig = parse_signal(signal_name if signal_name is not None else config.default_signal)
    kill_process_tree(ProcessHandle(pid=pid), sig, table=default_process_table(config))
    emit({"pid": pid, "signal": sig.name}, text=f"Sent {sig.name} to process tree {pid}.")


@app.command(name="tree")
def tree_command(
    pid: Annotated[int, Parameter(help="Root process id.")],
) -> None:
    """List live descendants of a process, deepest first."""

    descendants = collect_descendants(pid, default_process_table(_config()))
    emit(
        {"pid": pid, "descendants": descendants},
        text="\n".join(str(item) for item in descendants),
    )


@app.command(name="config")
def config_command() -> None:
    """Show the resolved configuration."""

    config = _config()
    emit(config, text="\n".join(f"{key} = {value}" for key, value in _config_items(config)))


def _config_items(config: ProctreeConfig) -> list[tuple[str, object]]:
    return [
        ("default_signal", config.default_signal),
        ("kill_grace_seconds", config.kill_grace_seconds),
        ("taskkill_command", config.taskkill_command),
        ("taskkill_timeout_seconds", config.taskkill_timeout_seconds),
        ("shell", config.shell),
    ]


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point used by `proctree` and `python -m proctree`."""

    args = list(sys.argv[1:] if argv is None else argv)
    cleaned_args, options, verbosity = _extract_global_options(args)

    # Configure logging early so structlog output goes to stderr, not stdout.
    configure_logging(json_mode=options.output.format == "json", verbosity=verbosity)

    token = _GLOBAL_OPTIONS.set(options)
    try:
        try:
            app(cleaned_args)
        except TimeoutError as exc:
            print(f"error: {exc}", file=sys.stderr)
            raise SystemExit(124) from None
        except (SpawnError, ValueError, OSError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            raise SystemExit(1) from None
    finally:
        _GLOBAL_OPTIONS.reset(token)

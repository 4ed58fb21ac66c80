"""Supervised shell command execution with live output forwarding."""

from __future__ import annotations

import asyncio
import codecs
import signal
import sys
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import structlog

from proctree.lib.exec.errors import NonZeroExitError, SpawnError
from proctree.lib.exec.signals import split_return_code
from proctree.lib.exec.terminator import kill_process_tree
from proctree.lib.ports import LoggerSink, ProcessTable
from proctree.lib.types import ProcessHandle

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 64 * 1024
_FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

ProcessCallback = Callable[[asyncio.subprocess.Process], None]
Emitter = Callable[[str], object]


class RunState(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED_OK = "exited_ok"
    EXITED_ERROR = "exited_error"
    SPAWN_FAILED = "spawn_failed"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Terminal value of one supervised run."""

    command: str
    stdout: str
    stderr: str
    exit_code: int | None
    signal: signal.Signals | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.signal is None and self.exit_code == 0


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Spawn options; `env` and `executable` are handed to the OS untouched."""

    cwd: Path | str | None = None
    get_process: ProcessCallback | None = None
    env: Mapping[str, str] | None = None
    executable: str | None = None


async def iter_chunks(reader: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield decoded text chunks from `reader` as they arrive, until EOF."""

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await reader.read(CHUNK_SIZE)
        if not data:
            break
        text = decoder.decode(data)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


async def _forward(chunks: AsyncIterator[str], emit: Emitter) -> str:
    parts: list[str] = []
    async for chunk in chunks:
        parts.append(chunk)
        try:
            emit(chunk)
        except Exception:
            # Keep draining the pipe so the child never blocks on a full buffer.
            logger.warning("Output sink failed.", exc_info=True)
    return "".join(parts)


def _passthrough(stream_name: str) -> Emitter:
    def _write(chunk: str) -> None:
        # Resolved per chunk so redirected sys.stdout/sys.stderr are honoured.
        stream = getattr(sys, stream_name)
        stream.write(chunk)
        stream.flush()

    return _write


class SupervisedCommand:
    """One shell command: spawn, forward its output, and report how it ended."""

    def __init__(
        self,
        command: str,
        logger: LoggerSink | None = None,
        options: RunOptions | None = None,
    ) -> None:
        if not command.strip():
            raise ValueError("Cannot run an empty command.")
        self._command = command
        self._sink = logger
        self._options = options or RunOptions()
        self._state = RunState.NOT_STARTED
        self._process: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task[str] | None = None
        self._stderr_task: asyncio.Task[str] | None = None
        self._result: CommandResult | None = None

    @property
    def command(self) -> str:
        return self._command

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def handle(self) -> ProcessHandle:
        return ProcessHandle(pid=self._process.pid if self._process is not None else None)

    @property
    def result(self) -> CommandResult | None:
        return self._result

    def _emitters(self) -> tuple[Emitter, Emitter]:
        if self._sink is None:
            return _passthrough("stdout"), _passthrough("stderr")
        return self._sink.debug, self._sink.error

    async def start(self) -> asyncio.subprocess.Process:
        """Spawn the command; raises SpawnError if the OS refuses."""

        if self._state is not RunState.NOT_STARTED:
            raise RuntimeError(f"Command already started (state: {self._state}).")

        cwd = self._options.cwd
        env = dict(self._options.env) if self._options.env is not None else None
        try:
            process = await asyncio.create_subprocess_shell(
                self._command,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                executable=self._options.executable,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._state = RunState.SPAWN_FAILED
            self._result = CommandResult(
                command=self._command,
                stdout="",
                stderr="",
                exit_code=None,
                error=str(exc),
            )
            logger.debug("Command spawn failed.", command=self._command, error=str(exc))
            raise SpawnError(self._result) from exc

        if process.stdout is None or process.stderr is None:
            raise RuntimeError("Subprocess did not expose stdout/stderr pipes.")

        self._process = process
        self._state = RunState.RUNNING
        logger.debug("Command started.", command=self._command, pid=process.pid)

        stdout_emit, stderr_emit = self._emitters()
        self._stdout_task = asyncio.create_task(_forward(iter_chunks(process.stdout), stdout_emit))
        self._stderr_task = asyncio.create_task(_forward(iter_chunks(process.stderr), stderr_emit))

        if self._options.get_process is not None:
            try:
                self._options.get_process(process)
            except Exception:
                logger.debug("Process callback failed; tearing down.", pid=process.pid)
                kill_process_tree(process, _FORCE_SIGNAL)
                self._result = await self._collect()
                raise
        return process

    async def wait(self) -> CommandResult:
        """Wait for exit and return the result; raise on spawn failure or non-zero exit."""

        if self._state is RunState.NOT_STARTED:
            await self.start()
        if self._result is None:
            self._result = await self._collect()
        return self._settle(self._result)

    async def _collect(self) -> CommandResult:
        assert self._process is not None
        assert self._stdout_task is not None and self._stderr_task is not None

        raw_return_code = await self._process.wait()
        stdout_text, stderr_text = await asyncio.gather(self._stdout_task, self._stderr_task)
        exit_code, received_signal = split_return_code(raw_return_code)
        result = CommandResult(
            command=self._command,
            stdout=stdout_text,
            stderr=stderr_text,
            exit_code=exit_code,
            signal=received_signal,
        )
        self._state = RunState.EXITED_OK if result.ok else RunState.EXITED_ERROR
        logger.debug(
            "Command exited.",
            command=self._command,
            pid=self._process.pid,
            exit_code=exit_code,
            signal=received_signal.name if received_signal is not None else None,
        )
        return result

    def _settle(self, result: CommandResult) -> CommandResult:
        if self._state is RunState.SPAWN_FAILED:
            raise SpawnError(result)
        if self._state is RunState.EXITED_ERROR:
            raise NonZeroExitError(result)
        return result

    def kill_tree(
        self,
        sig: signal.Signals = signal.SIGTERM,
        *,
        table: ProcessTable | None = None,
    ) -> None:
        """Terminate the running command and everything it spawned."""

        kill_process_tree(self.handle, sig, table=table)


async def run(
    command: str,
    *,
    logger: LoggerSink | None = None,
    cwd: Path | str | None = None,
    get_process: ProcessCallback | None = None,
    env: Mapping[str, str] | None = None,
    executable: str | None = None,
) -> CommandResult:
    """Run `command` through the shell and wait for it to exit.

    Standard output goes to `logger.debug` and standard error to
    `logger.error` chunk by chunk; without a logger both are written through
    to this process's own streams. Full text is buffered either way.
    """

    options = RunOptions(cwd=cwd, get_process=get_process, env=env, executable=executable)
    return await SupervisedCommand(command, logger, options).wait()


def make_runner(
    command: str,
    logger: LoggerSink | None,
    options: RunOptions | None = None,
) -> Callable[[], Awaitable[str]]:
    """Bind a command now, run it later; the coroutine resolves to its stdout."""

    async def _runner() -> str:
        result = await SupervisedCommand(command, logger, options).wait()
        return result.stdout

    return _runner

"""Failures surfaced by the command runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proctree.lib.exec.runner import CommandResult


class ProctreeError(Exception):
    """Base class for proctree errors."""


class CommandError(ProctreeError):
    """A supervised command did not complete successfully."""

    def __init__(self, message: str, result: CommandResult) -> None:
        self.result = result
        super().__init__(message)

    @property
    def stdout(self) -> str:
        return self.result.stdout

    @property
    def stderr(self) -> str:
        return self.result.stderr


class SpawnError(CommandError):
    """The OS could not create the process."""

    def __init__(self, result: CommandResult) -> None:
        super().__init__(f"Failed to spawn {result.command!r}: {result.error}", result)


class NonZeroExitError(CommandError):
    """The process ran and exited with a failing status or a signal."""

    def __init__(self, result: CommandResult) -> None:
        if result.signal is not None:
            status = f"was terminated by {result.signal.name}"
        else:
            status = f"exited with status {result.exit_code}"
        message = f"Command {result.command!r} {status}"
        stderr = result.stderr.strip()
        if stderr:
            message = f"{message}:\n{stderr}"
        super().__init__(message, result)

    @property
    def exit_code(self) -> int | None:
        return self.result.exit_code


class CommandTimeoutError(CommandError, TimeoutError):
    """Raised by the caller-side timeout helper after tearing the tree down."""

    def __init__(self, result: CommandResult, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        CommandError.__init__(
            self,
            f"Command {result.command!r} exceeded timeout after {timeout_seconds:.3f}s",
            result,
        )

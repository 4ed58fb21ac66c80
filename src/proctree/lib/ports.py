"""Capability interfaces consumed by the terminator and runner."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import signal


@runtime_checkable
class SupportsPid(Protocol):
    """Anything that names one OS process (asyncio or Popen processes, handles)."""

    @property
    def pid(self) -> int | None: ...


@runtime_checkable
class LoggerSink(Protocol):
    """Caller-owned output sink; structlog and stdlib loggers both qualify."""

    def debug(self, message: str) -> object: ...

    def error(self, message: str) -> object: ...


class ProcessTable(Protocol):
    """Platform process-table operations used to tear down a process tree.

    Implementations never raise: a failed query or a missing target is
    reported through the return value.
    """

    @property
    def atomic(self) -> bool:
        """True when `kill_tree_atomic` destroys a whole tree in one call."""
        ...

    def discover_children(self, pid: int) -> tuple[int, ...]: ...

    def signal(self, pid: int, sig: signal.Signals) -> bool: ...

    def kill_tree_atomic(self, pid: int) -> bool: ...

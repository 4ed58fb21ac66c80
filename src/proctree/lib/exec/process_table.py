"""Platform process-table implementations.

POSIX has no primitive that destroys an arbitrary process tree, so children
are discovered one level at a time through psutil and signalled
individually. Windows offers `taskkill /T`, which removes a whole tree in a
single call.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys

import psutil
import structlog

from proctree.lib.config.settings import ProctreeConfig

logger = structlog.get_logger(__name__)

_DEFAULT_CONFIG = ProctreeConfig()


def _deliver(pid: int, sig: signal.Signals) -> bool:
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        # Already exited; the desired end state.
        logger.debug("Signal target already gone.", pid=pid, signal=sig.name)
        return False
    except (PermissionError, OSError) as exc:
        logger.debug("Signal delivery failed.", pid=pid, signal=sig.name, error=str(exc))
        return False
    return True


class PosixProcessTable:
    """Discovery through `psutil.Process.children`, delivery through `os.kill`."""

    @property
    def atomic(self) -> bool:
        return False

    def discover_children(self, pid: int) -> tuple[int, ...]:
        try:
            children = psutil.Process(pid).children(recursive=False)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            logger.debug("Child enumeration failed.", pid=pid, error=str(exc))
            return ()
        return tuple(child.pid for child in children)

    def signal(self, pid: int, sig: signal.Signals) -> bool:
        return _deliver(pid, sig)

    def kill_tree_atomic(self, pid: int) -> bool:
        _ = pid
        return False


class WindowsProcessTable:
    """Atomic tree teardown through `taskkill /F /T`."""

    def __init__(
        self,
        *,
        taskkill_command: str = _DEFAULT_CONFIG.taskkill_command,
        timeout_seconds: float = _DEFAULT_CONFIG.taskkill_timeout_seconds,
    ) -> None:
        self._taskkill_command = taskkill_command
        self._timeout_seconds = timeout_seconds

    @property
    def atomic(self) -> bool:
        return True

    def discover_children(self, pid: int) -> tuple[int, ...]:
        _ = pid
        return ()

    def signal(self, pid: int, sig: signal.Signals) -> bool:
        return _deliver(pid, sig)

    def kill_tree_atomic(self, pid: int) -> bool:
        try:
            completed = subprocess.run(
                [self._taskkill_command, "/F", "/T", "/PID", str(pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
                timeout=self._timeout_seconds,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("taskkill failed.", pid=pid, error=str(exc))
            return False
        # Non-zero typically means the root already exited.
        return completed.returncode == 0


def default_process_table(
    config: ProctreeConfig | None = None,
) -> PosixProcessTable | WindowsProcessTable:
    """Return the process table for the running platform."""

    resolved = config or _DEFAULT_CONFIG
    if sys.platform == "win32":
        return WindowsProcessTable(
            taskkill_command=resolved.taskkill_command,
            timeout_seconds=resolved.taskkill_timeout_seconds,
        )
    return PosixProcessTable()

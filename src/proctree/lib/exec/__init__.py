"""Process-tree termination and supervised command execution."""

from proctree.lib.exec.errors import (
    CommandError,
    CommandTimeoutError,
    NonZeroExitError,
    ProctreeError,
    SpawnError,
)
from proctree.lib.exec.process_table import (
    PosixProcessTable,
    WindowsProcessTable,
    default_process_table,
)
from proctree.lib.exec.runner import (
    CommandResult,
    RunOptions,
    RunState,
    SupervisedCommand,
    iter_chunks,
    make_runner,
    run,
)
from proctree.lib.exec.signals import parse_signal, signal_to_exit_code, split_return_code
from proctree.lib.exec.terminator import collect_descendants, kill_pid_tree, kill_process_tree
from proctree.lib.exec.timeout import (
    DEFAULT_KILL_GRACE_SECONDS,
    run_with_timeout,
    terminate_tree_with_grace,
)

__all__ = [
    "DEFAULT_KILL_GRACE_SECONDS",
    "CommandError",
    "CommandResult",
    "CommandTimeoutError",
    "NonZeroExitError",
    "PosixProcessTable",
    "ProctreeError",
    "RunOptions",
    "RunState",
    "SpawnError",
    "SupervisedCommand",
    "WindowsProcessTable",
    "collect_descendants",
    "default_process_table",
    "iter_chunks",
    "kill_pid_tree",
    "kill_process_tree",
    "make_runner",
    "parse_signal",
    "run",
    "run_with_timeout",
    "signal_to_exit_code",
    "split_return_code",
    "terminate_tree_with_grace",
]

"""Process-tree termination and supervised shell command execution."""

from proctree.lib.exec import (
    CommandError,
    CommandResult,
    NonZeroExitError,
    RunOptions,
    SpawnError,
    SupervisedCommand,
    kill_process_tree,
    make_runner,
    run,
)
from proctree.lib.types import ProcessHandle

__version__ = "0.1.0"

__all__ = [
    "CommandError",
    "CommandResult",
    "NonZeroExitError",
    "ProcessHandle",
    "RunOptions",
    "SpawnError",
    "SupervisedCommand",
    "__version__",
    "kill_process_tree",
    "make_runner",
    "run",
]

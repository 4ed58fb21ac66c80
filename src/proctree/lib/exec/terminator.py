"""Best-effort termination of a process and all of its descendants."""

from __future__ import annotations

import signal

import structlog

from proctree.lib.exec.process_table import default_process_table
from proctree.lib.ports import ProcessTable, SupportsPid

logger = structlog.get_logger(__name__)


def kill_process_tree(
    handle: SupportsPid,
    sig: signal.Signals = signal.SIGTERM,
    *,
    table: ProcessTable | None = None,
) -> None:
    """Terminate `handle`'s process and every transitive descendant.

    Children are signalled before their parent, so no parent dies while a
    child it would have reaped is still running. A handle without a pid, an
    already-exited process, or a failed child query is a silent no-op.

    Children spawned after their parent was enumerated are not seen by this
    pass and may survive it.
    """

    pid = getattr(handle, "pid", None)
    # 0 and negative ids address process groups in os.kill, never one tree.
    if pid is None or pid <= 0:
        return

    resolved = table if table is not None else default_process_table()
    logger.debug("Terminating process tree.", pid=pid, signal=sig.name, atomic=resolved.atomic)
    if resolved.atomic:
        resolved.kill_tree_atomic(pid)
        return
    kill_pid_tree(pid, sig, resolved)


def kill_pid_tree(pid: int, sig: signal.Signals, table: ProcessTable) -> None:
    """Depth-first, children-before-parent signal delivery."""

    for child in table.discover_children(pid):
        kill_pid_tree(child, sig, table)
    table.signal(pid, sig)


def collect_descendants(pid: int, table: ProcessTable | None = None) -> list[int]:
    """Return every live descendant of `pid`, deepest first."""

    resolved = table if table is not None else default_process_table()
    descendants: list[int] = []
    for child in resolved.discover_children(pid):
        descendants.extend(collect_descendants(child, resolved))
        descendants.append(child)
    return descendants

"""Caller-side timeout helpers layered over the runner and terminator."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterable, Mapping
from pathlib import Path

import psutil
import structlog

from proctree.lib.config.settings import ProctreeConfig
from proctree.lib.exec.errors import CommandError, CommandTimeoutError
from proctree.lib.exec.process_table import default_process_table
from proctree.lib.exec.runner import (
    CommandResult,
    ProcessCallback,
    RunOptions,
    SupervisedCommand,
)
from proctree.lib.exec.terminator import collect_descendants, kill_process_tree
from proctree.lib.ports import LoggerSink, ProcessTable

logger = structlog.get_logger(__name__)

DEFAULT_KILL_GRACE_SECONDS = ProctreeConfig().kill_grace_seconds
# Windows has no SIGKILL; taskkill /F is already forceful there.
_FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)
_POLL_INTERVAL_SECONDS = 0.05


def _snapshot(pids: Iterable[int]) -> list[psutil.Process]:
    processes: list[psutil.Process] = []
    for pid in pids:
        try:
            processes.append(psutil.Process(pid))
        except psutil.NoSuchProcess:
            continue
    return processes


def _still_running(process: psutil.Process) -> bool:
    # is_running() also rejects a pid that was recycled after the snapshot.
    try:
        return process.is_running() and process.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


async def _survivors_at(
    processes: list[psutil.Process],
    deadline: float,
) -> list[psutil.Process]:
    loop = asyncio.get_running_loop()
    survivors = [item for item in processes if _still_running(item)]
    while survivors and loop.time() < deadline:
        await asyncio.sleep(_POLL_INTERVAL_SECONDS)
        survivors = [item for item in survivors if _still_running(item)]
    return survivors


async def terminate_tree_with_grace(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    table: ProcessTable | None = None,
) -> None:
    """SIGTERM the tree, then SIGKILL whatever outlives the grace period.

    Descendants are captured before the first signal, so a child that
    ignores SIGTERM is still force-killed after its parent has exited.
    """

    if process.returncode is not None:
        return

    resolved = table or default_process_table()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + grace_seconds
    descendants = _snapshot(collect_descendants(process.pid, resolved))

    kill_process_tree(process, signal.SIGTERM, table=resolved)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except TimeoutError:
        logger.debug("Escalating to forced kill.", pid=process.pid)
        kill_process_tree(process, _FORCE_SIGNAL, table=resolved)

    for survivor in await _survivors_at(descendants, deadline):
        logger.debug("Forcing surviving descendant.", pid=survivor.pid, root=process.pid)
        resolved.signal(survivor.pid, _FORCE_SIGNAL)
    await process.wait()


async def run_with_timeout(
    command: str,
    *,
    timeout_seconds: float,
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    logger: LoggerSink | None = None,
    cwd: Path | str | None = None,
    get_process: ProcessCallback | None = None,
    env: Mapping[str, str] | None = None,
    executable: str | None = None,
    table: ProcessTable | None = None,
) -> CommandResult:
    """Run `command`, tearing its process tree down if it exceeds the timeout.

    Cancelling the returned coroutine tears the tree down the same way before
    the cancellation propagates.
    """

    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be > 0.")

    supervised = SupervisedCommand(
        command,
        logger,
        RunOptions(cwd=cwd, get_process=get_process, env=env, executable=executable),
    )
    process = await supervised.start()
    waiter = asyncio.ensure_future(supervised.wait())
    try:
        done, _pending = await asyncio.wait({waiter}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        await terminate_tree_with_grace(process, grace_seconds=kill_grace_seconds, table=table)
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        raise
    if waiter in done:
        return waiter.result()

    await terminate_tree_with_grace(process, grace_seconds=kill_grace_seconds, table=table)
    try:
        result = await waiter
    except CommandError as exc:
        result = exc.result
    raise CommandTimeoutError(result, timeout_seconds)

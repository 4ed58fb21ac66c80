"""Caller-side timeout helper tests."""

from __future__ import annotations

import asyncio
import signal
import time

import pytest

from process_helpers import any_alive, posix_only, wait_until
from proctree.lib.exec.errors import CommandTimeoutError
from proctree.lib.exec.terminator import collect_descendants
from proctree.lib.exec.timeout import run_with_timeout, terminate_tree_with_grace

pytestmark = posix_only


class _QuietSink:
    def debug(self, message: str) -> None:
        _ = message

    def error(self, message: str) -> None:
        _ = message


@pytest.mark.asyncio
async def test_fast_command_returns_before_timeout() -> None:
    result = await run_with_timeout("echo quick", timeout_seconds=5.0, logger=_QuietSink())

    assert result.stdout == "quick\n"


async def _capture_tree(
    task: asyncio.Task[object],
    spawned: list[asyncio.subprocess.Process],
    minimum: int,
) -> list[int]:
    assert await wait_until(
        lambda: bool(spawned) and len(collect_descendants(spawned[0].pid)) >= minimum
    )
    assert not task.done()
    return collect_descendants(spawned[0].pid)


@pytest.mark.asyncio
async def test_timeout_tears_down_the_whole_tree() -> None:
    spawned: list[asyncio.subprocess.Process] = []
    started = time.monotonic()
    task = asyncio.ensure_future(
        run_with_timeout(
            'sh -c "sleep 10 & sleep 10 & wait"',
            timeout_seconds=1.5,
            kill_grace_seconds=1.0,
            logger=_QuietSink(),
            get_process=spawned.append,
        )
    )
    descendants = await _capture_tree(task, spawned, 2)

    with pytest.raises(CommandTimeoutError) as exc_info:
        await asyncio.wait_for(task, timeout=8.0)

    assert time.monotonic() - started < 8.0
    error = exc_info.value
    assert isinstance(error, TimeoutError)
    assert error.timeout_seconds == 1.5
    assert error.result.ok is False
    assert await wait_until(lambda: not any_alive(descendants))


@pytest.mark.asyncio
async def test_timeout_force_kills_descendant_that_ignores_sigterm() -> None:
    # The root shell dies on SIGTERM; the subshell and its sleep ignore it
    # and hold the output pipes open.
    spawned: list[asyncio.subprocess.Process] = []
    started = time.monotonic()
    task = asyncio.ensure_future(
        run_with_timeout(
            "(trap '' TERM; sleep 12; true) & wait",
            timeout_seconds=1.5,
            kill_grace_seconds=0.5,
            logger=_QuietSink(),
            get_process=spawned.append,
        )
    )
    descendants = await _capture_tree(task, spawned, 2)

    with pytest.raises(CommandTimeoutError):
        await asyncio.wait_for(task, timeout=8.0)

    assert time.monotonic() - started < 8.0
    assert await wait_until(lambda: not any_alive(descendants))


@pytest.mark.asyncio
async def test_cancelling_run_with_timeout_tears_down_the_tree() -> None:
    spawned: list[asyncio.subprocess.Process] = []
    task = asyncio.ensure_future(
        run_with_timeout(
            'sh -c "sleep 10 & sleep 10 & wait"',
            timeout_seconds=30.0,
            kill_grace_seconds=0.5,
            logger=_QuietSink(),
            get_process=spawned.append,
        )
    )
    descendants = await _capture_tree(task, spawned, 2)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=8.0)

    assert spawned[0].returncode is not None
    assert await wait_until(lambda: not any_alive(descendants))


@pytest.mark.asyncio
async def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        await run_with_timeout("true", timeout_seconds=0)


@pytest.mark.asyncio
async def test_grace_period_escalates_to_sigkill() -> None:
    # Ignored signals are inherited, so the sleep child ignores SIGTERM too.
    process = await asyncio.create_subprocess_exec("sh", "-c", "trap '' TERM; sleep 10; true")
    assert await wait_until(lambda: len(collect_descendants(process.pid)) >= 1)
    descendants = collect_descendants(process.pid)

    await asyncio.wait_for(terminate_tree_with_grace(process, grace_seconds=0.3), timeout=10.0)

    assert process.returncode == -signal.SIGKILL
    assert await wait_until(lambda: not any_alive(descendants))


@pytest.mark.asyncio
async def test_graceful_exit_needs_no_escalation() -> None:
    process = await asyncio.create_subprocess_exec("sleep", "10")

    await asyncio.wait_for(terminate_tree_with_grace(process, grace_seconds=5.0), timeout=10.0)

    assert process.returncode == -signal.SIGTERM


@pytest.mark.asyncio
async def test_exited_process_is_left_alone() -> None:
    process = await asyncio.create_subprocess_exec("true")
    await process.wait()

    await terminate_tree_with_grace(process, grace_seconds=0.1)

    assert process.returncode == 0

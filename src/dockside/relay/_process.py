"""Scoped ownership of a spawned runtime process.

``owned_process`` guarantees the process is killed and reaped however the
``async with`` body exits: normal return, exception, or task cancellation.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable

from dockside.logger import logger

Spawner = Callable[[], Awaitable[asyncio.subprocess.Process]]


async def terminate_process(
    proc: asyncio.subprocess.Process,
    *,
    label: str,
    timeout: float = 5.0,
) -> None:
    """Kill *proc* and wait for it to exit. Never raises.

    Safe to call repeatedly; an already-reaped process is left alone.
    """
    if proc.stdin is not None and not proc.stdin.is_closing():
        with contextlib.suppress(Exception):
            proc.stdin.close()

    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass  # exited between the returncode check and kill()
        except Exception as exc:
            logger.warning("Failed to kill process", process=label, err=str(exc))

    try:
        await asyncio.wait_for(proc.wait(), timeout=timeout)
    except TimeoutError:
        logger.warning("Process did not exit after kill", process=label, timeout=timeout)
    except Exception as exc:
        logger.warning("Failed to reap process", process=label, err=str(exc))
    else:
        logger.debug("Process reaped", process=label, exit_code=proc.returncode)


@contextlib.asynccontextmanager
async def owned_process(
    spawn: Spawner,
    *,
    label: str,
    kill_timeout: float = 5.0,
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Spawn a process and hold it for the duration of the block."""
    proc = await spawn()
    logger.debug("Process spawned", process=label, pid=proc.pid)
    try:
        yield proc
    finally:
        await terminate_process(proc, label=label, timeout=kill_timeout)

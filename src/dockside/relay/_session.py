"""Relay session lifecycle shared by the log and shell relays.

A session owns exactly one runtime process and one WebSocket. ``run()``
spawns the process, hands both ends to the subclass's ``_relay()`` loop, and
always finishes with ``teardown()``: background tasks cancelled, process
killed and reaped, socket closed. ``teardown()`` is idempotent; a second
call (late cancellation after an error path, say) returns immediately.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Coroutine
from typing import Any, ClassVar, Literal

from aiohttp import WSCloseCode, web

from dockside.config import RuntimeConfig, get_settings
from dockside.errors import StreamError
from dockside.logger import logger
from dockside.relay._process import owned_process, terminate_process
from dockside.runtime import ContainerRuntime, get_runtime

SessionState = Literal["open", "closing", "closed"]
SessionOutcome = Literal["clean", "error"]

_session_ids = itertools.count(1)


class RelaySession:
    """Base class; subclasses provide ``command()`` and ``_relay()``."""

    kind: ClassVar[str] = "relay"
    needs_stdin: ClassVar[bool] = False

    def __init__(
        self,
        container: str,
        *,
        runtime: ContainerRuntime | None = None,
        config: RuntimeConfig | None = None,
    ) -> None:
        self.container = container
        self.state: SessionState = "open"
        self.error: BaseException | None = None
        self._runtime = runtime or get_runtime()
        self._config = config or get_settings().runtime
        self._proc: asyncio.subprocess.Process | None = None
        self._ws: web.WebSocketResponse | None = None
        self._tasks: list[asyncio.Task[Any]] = []
        self.label = f"{self.kind}:{container}#{next(_session_ids)}"

    @property
    def outcome(self) -> SessionOutcome | None:
        if self.state != "closed":
            return None
        return "error" if self.error is not None else "clean"

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._proc

    def command(self) -> list[str]:
        raise NotImplementedError

    async def _relay(self, ws: web.WebSocketResponse, proc: asyncio.subprocess.Process) -> None:
        raise NotImplementedError

    async def run(self, ws: web.WebSocketResponse) -> None:
        """Relay until either side finishes. Raises StreamError on I/O failure."""
        self._ws = ws
        args = self.command()

        async def spawn() -> asyncio.subprocess.Process:
            return await self._runtime.spawn(
                args,
                stdin=self.needs_stdin,
                limit=self._config.max_line_bytes,
            )

        try:
            async with owned_process(
                spawn, label=self.label, kill_timeout=self._config.kill_timeout
            ) as proc:
                self._proc = proc
                logger.info("Session opened", session=self.label, pid=proc.pid)
                try:
                    await self._relay(ws, proc)
                except StreamError as exc:
                    self._record_error(exc)
                    raise
                finally:
                    await self.teardown()
        except OSError as exc:
            if self._proc is not None:
                raise
            # Spawn failed; there is no process to reap
            self._record_error(exc)
            await self.teardown()
            raise StreamError(f"Failed to start {args[0]}: {exc}") from exc

    async def teardown(self) -> None:
        if self.state != "open":
            return
        self.state = "closing"

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._proc is not None:
            await terminate_process(
                self._proc, label=self.label, timeout=self._config.kill_timeout
            )

        ws = self._ws
        if ws is not None and not ws.closed:
            code = WSCloseCode.INTERNAL_ERROR if self.error is not None else WSCloseCode.OK
            try:
                await ws.close(code=code)
            except Exception as exc:
                logger.debug("WebSocket close failed", session=self.label, err=str(exc))

        self.state = "closed"
        logger.info(
            "Session closed",
            session=self.label,
            outcome=self.outcome,
            exit_code=self._proc.returncode if self._proc else None,
            err=str(self.error) if self.error else None,
        )

    # -- helpers for subclasses -------------------------------------------

    def _start_task(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"{self.label}:{name}")
        self._tasks.append(task)
        return task

    def _record_error(self, exc: BaseException) -> None:
        """Keep the first failure; later ones are usually its fallout."""
        if self.error is None:
            self.error = exc


async def pong(ws: web.WebSocketResponse, payload: bytes, *, label: str) -> None:
    """Answer a ping. A failed pong is not fatal; the next receive reports the close."""
    try:
        await ws.pong(payload)
    except (ConnectionError, RuntimeError) as exc:
        logger.debug("Pong failed", session=label, err=str(exc))

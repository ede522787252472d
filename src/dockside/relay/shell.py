"""Interactive shell relay — ``docker exec -i <container> sh -i`` over a WebSocket.

Inbound binary and text frames are queued for a writer task that copies them
verbatim to the shell's stdin.
Two forwarder tasks copy stdout and stderr chunks outward as binary frames.
The forwarders and the inbound loop's pong replies share one socket, so
every outbound send happens under ``_send_lock``: one complete frame per
send, never two writers at once.

When both output streams reach EOF (the shell exited) the inbound loop stops
waiting and the session tears down, closing the socket normally.

This is a raw byte pipe, not a terminal: no PTY, no resize handling.
"""

from __future__ import annotations

import asyncio

from aiohttp import WSMsgType, web

from dockside.errors import StreamError
from dockside.logger import logger
from dockside.relay._session import RelaySession, pong
from dockside.relay.logs import SOCKET_END_TYPES


class ShellRelay(RelaySession):
    kind = "shell"
    needs_stdin = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._send_lock = asyncio.Lock()

    def command(self) -> list[str]:
        return self._runtime.exec_args(self.container, list(self._config.shell_command))

    async def _relay(self, ws: web.WebSocketResponse, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdin is not None
        assert proc.stdout is not None
        assert proc.stderr is not None

        forwarders = [
            self._start_task(self._forward(ws, proc.stdout, "stdout"), "stdout"),
            self._start_task(self._forward(ws, proc.stderr, "stderr"), "stderr"),
        ]
        drained = self._start_task(asyncio.wait(forwarders), "drain-watch")
        stdin_queue: asyncio.Queue[bytes] = asyncio.Queue()
        writer = self._start_task(self._write_stdin(proc.stdin, stdin_queue), "stdin")

        while True:
            receive = self._start_task(ws.receive(), "receive")
            await asyncio.wait({receive, drained, writer}, return_when=asyncio.FIRST_COMPLETED)
            if writer.done():
                receive.cancel()
                writer.result()
                return
            if not receive.done():
                # Both output streams hit EOF: the shell exited
                receive.cancel()
                logger.info("Shell output drained", session=self.label)
                return
            self._tasks.remove(receive)

            try:
                msg = receive.result()
            except Exception as exc:
                logger.warning("WebSocket receive error", session=self.label, err=str(exc))
                self._record_error(exc)
                return

            if msg.type == WSMsgType.BINARY:
                stdin_queue.put_nowait(msg.data)
            elif msg.type == WSMsgType.TEXT:
                stdin_queue.put_nowait(msg.data.encode())
            elif msg.type == WSMsgType.PING:
                async with self._send_lock:
                    await pong(ws, msg.data, label=self.label)
            elif msg.type == WSMsgType.PONG:
                continue
            elif msg.type == WSMsgType.ERROR:
                logger.warning("WebSocket receive error", session=self.label, err=str(msg.data))
                self._record_error(msg.data or ConnectionError("websocket error"))
                return
            elif msg.type in SOCKET_END_TYPES:
                return

    async def _write_stdin(self, stdin: asyncio.StreamWriter, queue: asyncio.Queue[bytes]) -> None:
        """Feed queued input to the shell in arrival order.

        Runs apart from the inbound loop so a shell that stops reading stdin
        blocks only this task; close frames are still received and end the
        session.
        """
        while True:
            data = await queue.get()
            try:
                stdin.write(data)
                await stdin.drain()
            except Exception as exc:
                raise StreamError(f"Failed to write to shell stdin: {exc}") from exc

    async def _forward(
        self,
        ws: web.WebSocketResponse,
        stream: asyncio.StreamReader,
        channel: str,
    ) -> None:
        """Copy one output stream to the socket, one chunk per binary frame."""
        while True:
            try:
                chunk = await stream.read(self._config.chunk_size)
            except Exception as exc:
                logger.warning(
                    "Failed to read shell output", session=self.label, channel=channel, err=str(exc)
                )
                self._record_error(exc)
                return
            if not chunk:
                return
            try:
                async with self._send_lock:
                    await ws.send_bytes(chunk)
            except Exception as exc:
                logger.warning(
                    "Failed to forward shell output",
                    session=self.label,
                    channel=channel,
                    err=str(exc),
                )
                self._record_error(exc)
                return

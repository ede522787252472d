"""Log stream relay — ``docker logs --follow`` over a WebSocket.

Three pump tasks (process stdout lines, process stderr lines, inbound socket
frames) feed one bounded FIFO queue. The relay loop drains it and is the only
task that writes to the socket, so no send lock is needed here.

Outbound frames are JSON text: ``{"channel": "stdout"|"stderr", "content": line}``.
Inbound pings are answered with pongs; a close, a receive error, or socket
end-of-stream ends the session. Any other inbound frame is ignored.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal

from aiohttp import WSMessage, WSMsgType, web

from dockside.errors import StreamError
from dockside.logger import logger
from dockside.relay._session import RelaySession, pong

Channel = Literal["stdout", "stderr"]

# Producers block once this many events are waiting; that is the backpressure
# that keeps a chatty container from buffering unbounded output in memory.
_QUEUE_SIZE = 64

SOCKET_END_TYPES = frozenset({WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED})


@dataclass(frozen=True)
class _LineEvent:
    channel: Channel
    line: str | None  # None = end of stream
    error: BaseException | None = None


@dataclass(frozen=True)
class _SocketEvent:
    message: WSMessage | None
    error: BaseException | None = None


def decode_line(raw: bytes) -> str:
    """Decode one line read from a process pipe, dropping its terminator."""
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw.decode(errors="replace")


async def _pump_lines(
    stream: asyncio.StreamReader,
    channel: Channel,
    queue: asyncio.Queue[_LineEvent | _SocketEvent],
) -> None:
    while True:
        try:
            raw = await stream.readline()
        except Exception as exc:
            # ValueError: line longer than the reader limit
            await queue.put(_LineEvent(channel, None, error=exc))
            return
        if not raw:
            await queue.put(_LineEvent(channel, None))
            return
        await queue.put(_LineEvent(channel, decode_line(raw)))


class LogRelay(RelaySession):
    """Follow a container's logs and forward each line as a tagged frame."""

    kind = "logs"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._remote_closed = asyncio.Event()

    def command(self) -> list[str]:
        return self._runtime.logs_args(self.container, self._config.log_tail_lines)

    async def _pump_socket(
        self,
        ws: web.WebSocketResponse,
        queue: asyncio.Queue[_LineEvent | _SocketEvent],
    ) -> None:
        while True:
            try:
                msg = await ws.receive()
            except Exception as exc:
                self._socket_failed(exc)
                await queue.put(_SocketEvent(None, error=exc))
                return
            if msg.type == WSMsgType.ERROR:
                self._socket_failed(msg.data)
            if msg.type in SOCKET_END_TYPES or msg.type == WSMsgType.ERROR:
                # Flag first so the loop stops forwarding even while the queue is full
                self._remote_closed.set()
                await queue.put(_SocketEvent(msg))
                return
            await queue.put(_SocketEvent(msg))

    def _socket_failed(self, exc: BaseException | None) -> None:
        logger.warning("WebSocket receive error", session=self.label, err=str(exc))
        self._record_error(exc or ConnectionError("websocket error"))
        self._remote_closed.set()

    async def _relay(self, ws: web.WebSocketResponse, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        assert proc.stderr is not None

        queue: asyncio.Queue[_LineEvent | _SocketEvent] = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._start_task(_pump_lines(proc.stdout, "stdout", queue), "stdout")
        self._start_task(_pump_lines(proc.stderr, "stderr", queue), "stderr")
        self._start_task(self._pump_socket(ws, queue), "socket")

        open_streams: set[Channel] = {"stdout", "stderr"}
        while open_streams and not self._remote_closed.is_set():
            event = await queue.get()

            if isinstance(event, _SocketEvent):
                if not await self._handle_inbound(ws, event):
                    return
                continue

            if event.error is not None:
                logger.warning(
                    "Failed to read container output",
                    session=self.label,
                    channel=event.channel,
                    err=str(event.error),
                )
                raise StreamError(
                    f"Failed to read container {event.channel}: {event.error}"
                ) from event.error

            if event.line is None:
                open_streams.discard(event.channel)
                continue

            if self._remote_closed.is_set() or ws.closed:
                return
            await self._send_frame(ws, event.channel, event.line)

        if not open_streams:
            logger.info("Log process finished", session=self.label, exit_code=proc.returncode)

    async def _handle_inbound(self, ws: web.WebSocketResponse, event: _SocketEvent) -> bool:
        """React to one inbound frame. Returns False when the session should end."""
        msg = event.message
        if event.error is not None or msg is None:
            return False
        if msg.type == WSMsgType.PING:
            await pong(ws, msg.data, label=self.label)
            return True
        if msg.type in SOCKET_END_TYPES or msg.type == WSMsgType.ERROR:
            return False
        # Text, binary and pong frames carry nothing for an output-only stream
        return True

    async def _send_frame(self, ws: web.WebSocketResponse, channel: Channel, content: str) -> None:
        try:
            await ws.send_json({"channel": channel, "content": content})
        except Exception as exc:
            if ws.closed or self._remote_closed.is_set():
                # Peer closed mid-send; the socket pump reports the close
                return
            raise StreamError(f"Failed to send log frame: {exc}") from exc

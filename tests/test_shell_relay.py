"""End-to-end tests for the interactive shell relay.

A Python child process stands in for ``docker exec -i <container> sh -i``.
"""

from __future__ import annotations

import asyncio

from aiohttp import WSCloseCode, WSMsgType
from conftest import RelayDeps, ScriptRuntime, start_client, wait_until

from dockside.config import RuntimeConfig
from dockside.errors import StreamError
from dockside.relay import ShellRelay

_ECHO = """\
import sys
while True:
    line = sys.stdin.buffer.readline()
    if not line:
        break
    sys.stdout.buffer.write(line)
    sys.stdout.buffer.flush()
"""

_SHELL_PATH = "/api/containers/proj-web-1/shell/ws"


async def _read_binary_until(ws, expected: bytes) -> bytes:
    received = b""
    async with asyncio.timeout(10):
        while len(received) < len(expected):
            msg = await ws.receive()
            assert msg.type == WSMsgType.BINARY, msg
            received += msg.data
    return received


async def test_input_reaches_stdin_in_order():
    deps = RelayDeps(exec_script=_ECHO)
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        await ws.send_bytes(b"one\n")
        await ws.send_str("two\n")
        await ws.send_bytes(b"three\n")
        assert await _read_binary_until(ws, b"one\ntwo\nthree\n") == b"one\ntwo\nthree\n"
        await ws.close()
    finally:
        await client.close()


async def test_ping_is_answered_and_never_written_to_stdin():
    deps = RelayDeps(exec_script=_ECHO)
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        await ws.ping(b"probe")
        msg = await ws.receive(timeout=5)
        assert msg.type == WSMsgType.PONG
        assert msg.data == b"probe"

        await ws.send_bytes(b"after\n")
        assert await _read_binary_until(ws, b"after\n") == b"after\n"
        await ws.close()
    finally:
        await client.close()


async def test_stdout_and_stderr_chunks_are_never_mixed():
    script = (
        "import sys, threading\n"
        "def spam(stream, byte):\n"
        "    for _ in range(200):\n"
        "        stream.write(byte * 512)\n"
        "        stream.flush()\n"
        "t = threading.Thread(target=spam, args=(sys.stderr.buffer, b'E'))\n"
        "t.start()\n"
        "spam(sys.stdout.buffer, b'O')\n"
        "t.join()\n"
    )
    deps = RelayDeps(exec_script=script, config=RuntimeConfig(chunk_size=1024))
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        totals = {b"O": 0, b"E": 0}
        async with asyncio.timeout(10):
            async for msg in ws:
                assert msg.type == WSMsgType.BINARY
                assert 0 < len(msg.data) <= 1024
                # Each frame comes from a single stream
                assert len(set(msg.data)) == 1
                totals[msg.data[:1]] += len(msg.data)
        assert totals == {b"O": 200 * 512, b"E": 200 * 512}
    finally:
        await client.close()


async def test_shell_exit_closes_socket_cleanly():
    deps = RelayDeps(exec_script="print('bye')")
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        assert await _read_binary_until(ws, b"bye\n") == b"bye\n"
        msg = await ws.receive(timeout=5)
        assert msg.type == WSMsgType.CLOSE
        assert ws.close_code == WSCloseCode.OK

        session = deps.sessions[0]
        await wait_until(lambda: session.state == "closed")
        assert session.outcome == "clean"
    finally:
        await client.close()


async def test_client_close_kills_shell():
    deps = RelayDeps(exec_script=_ECHO)
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        await wait_until(lambda: bool(deps.sessions) and deps.sessions[0].process is not None)
        await ws.close()

        session = deps.sessions[0]
        await wait_until(lambda: session.state == "closed")
        assert session.outcome == "clean"
        assert session.process.returncode is not None
    finally:
        await client.close()


async def test_client_close_ends_session_while_stdin_is_backed_up():
    # The shell never reads stdin, so the pipe fills and writes stall
    script = "import time\nprint('ready')\ntime.sleep(60)\n"
    deps = RelayDeps(exec_script=script)
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        assert await _read_binary_until(ws, b"ready\n") == b"ready\n"
        for _ in range(64):
            await ws.send_bytes(b"x" * 65536)
        await ws.close()

        session = deps.sessions[0]
        await wait_until(lambda: session.state == "closed", timeout=15)
        assert session.outcome == "clean"
        assert session.process.returncode is not None
    finally:
        await client.close()


async def test_teardown_after_run_is_a_no_op():
    deps = RelayDeps(exec_script="print('bye')")
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        assert await _read_binary_until(ws, b"bye\n") == b"bye\n"
        msg = await ws.receive(timeout=5)
        assert msg.type == WSMsgType.CLOSE
        session = deps.sessions[0]
        await wait_until(lambda: session.state == "closed")

        await session.teardown()
        assert session.state == "closed"
        assert session.outcome == "clean"
        assert session.error is None
        assert ws.close_code == WSCloseCode.OK
    finally:
        await client.close()


async def test_stdin_write_failure_ends_session_with_error():
    # Close our stdin, announce it, then idle; writes to the pipe now fail
    script = "import os, sys, time\nos.close(0)\nprint('ready')\ntime.sleep(60)\n"
    deps = RelayDeps(exec_script=script)
    client = await start_client(deps)
    try:
        ws = await client.ws_connect(_SHELL_PATH, autoping=False)
        assert await _read_binary_until(ws, b"ready\n") == b"ready\n"

        # The first write can land before the broken pipe is noticed; keep writing
        for _ in range(50):
            if ws.closed:
                break
            await ws.send_bytes(b"ls\n")
            try:
                msg = await ws.receive(timeout=0.2)
            except TimeoutError:
                continue
            if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED):
                break

        session = deps.sessions[0]
        await wait_until(lambda: session.state == "closed")
        assert session.outcome == "error"
        assert isinstance(session.error, StreamError)
        assert ws.close_code == WSCloseCode.INTERNAL_ERROR
    finally:
        await client.close()


def test_command_uses_configured_shell():
    class RecordingRuntime(ScriptRuntime):
        def exec_args(self, container, command):
            return ["exec", container, *command]

    session = ShellRelay(
        "proj-web-1",
        runtime=RecordingRuntime(),
        config=RuntimeConfig(shell_command=["bash", "-i"]),
    )
    assert session.command() == ["exec", "proj-web-1", "bash", "-i"]
    assert session.needs_stdin is True

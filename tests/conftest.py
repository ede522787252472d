"""Shared test fixtures for dockside."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest
from aiohttp.test_utils import TestClient, TestServer

from dockside.config import LoggingConfig, RuntimeConfig, ServerConfig, Settings, StoreConfig
from dockside.http_server import create_app
from dockside.relay import LogRelay, RelaySession, ShellRelay
from dockside.runtime import CommandResult, ContainerRuntime

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object with defaults for testing.

    Usage::

        s = make_settings(runtime=RuntimeConfig(log_tail_lines=10))
    """
    defaults = {
        "server": ServerConfig(),
        "runtime": RuntimeConfig(),
        "logging": LoggingConfig(),
        "store": StoreConfig(),
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


@dataclass(frozen=True)
class ScriptRuntime(ContainerRuntime):
    """Runtime whose ``logs``/``exec`` commands run a Python snippet instead.

    Lets relay tests drive a real child process without a container engine.
    """

    logs_script: str = "pass"
    exec_script: str = "pass"

    def logs_args(self, container: str, tail: int) -> list[str]:
        return [sys.executable, "-u", "-c", self.logs_script]

    def exec_args(self, container: str, command: list[str]) -> list[str]:
        return [sys.executable, "-u", "-c", self.exec_script]


@dataclass(frozen=True)
class CannedRuntime(ContainerRuntime):
    """Runtime whose capture-mode ``run()`` returns a fixed result."""

    result: CommandResult = field(
        default_factory=lambda: CommandResult(returncode=0, stdout="", stderr="")
    )

    async def run(self, args: list[str]) -> CommandResult:
        return self.result


SLEEP_FOREVER = "import time; time.sleep(60)"


class RelayDeps:
    """HttpDeps whose sessions run scripted processes; keeps every session it builds."""

    def __init__(
        self,
        *,
        logs_script: str = SLEEP_FOREVER,
        exec_script: str = SLEEP_FOREVER,
        config: RuntimeConfig | None = None,
        runtime: ContainerRuntime | None = None,
    ) -> None:
        self.runtime = runtime or ScriptRuntime(logs_script=logs_script, exec_script=exec_script)
        self.config = config or RuntimeConfig()
        self.sessions: list[RelaySession] = []

    async def resolve_container_ref(self, container_ref):
        raise NotImplementedError

    async def find_attempt(self, attempt_id):
        raise NotImplementedError

    async def list_services(self, project):
        raise NotImplementedError

    def log_session(self, container: str) -> RelaySession:
        session = LogRelay(container, runtime=self.runtime, config=self.config)
        self.sessions.append(session)
        return session

    def shell_session(self, container: str) -> RelaySession:
        session = ShellRelay(container, runtime=self.runtime, config=self.config)
        self.sessions.append(session)
        return session


async def start_client(deps) -> TestClient:
    """Serve ``create_app(deps)`` on a test server and return a started client."""
    client = TestClient(TestServer(create_app(deps)))
    await client.start_server()
    return client


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it holds; fail the test after *timeout* seconds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults: no config.toml,
    no .env, no file I/O.
    """
    monkeypatch.setattr("dockside.config._settings", make_settings())


@pytest.fixture(autouse=True)
def reset_runtime(monkeypatch):
    monkeypatch.setattr("dockside.runtime._runtime", None)


@pytest.fixture(autouse=True, scope="session")
def _close_test_database():
    """Close the aiosqlite connection after all tests complete.

    Uses ``stop()`` + thread join rather than ``await close()`` because
    the connection was created on a function-scoped event loop (during a
    test).
    """
    yield
    import dockside.db._connection as db_conn

    if db_conn._db is not None:
        db_conn._db.stop()
        if db_conn._db._thread is not None and db_conn._db._thread.is_alive():
            db_conn._db._thread.join(timeout=2)
        db_conn._db = None

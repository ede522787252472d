"""Container runtime CLI adapter.

Builds argument lists for the three runtime commands dockside needs
(``ps``, ``logs``, ``exec``) and runs them as asyncio subprocesses. Callers
pass only identifiers that already went through
:func:`dockside.identifiers.sanitize_identifier`; nothing here goes through a
shell.
"""

from __future__ import annotations

import asyncio
import shutil
from asyncio.subprocess import DEVNULL, PIPE
from dataclasses import dataclass

from dockside.config import get_settings
from dockside.logger import logger

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"


@dataclass
class CommandResult:
    """Result of a capture-mode runtime command."""

    returncode: int | None
    stdout: str
    stderr: str
    start_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.start_error is None and self.returncode == 0


@dataclass(frozen=True)
class ContainerRuntime:
    """Runtime adapter for a docker-compatible CLI."""

    cli: str = "docker"

    def is_available(self) -> bool:
        return shutil.which(self.cli) is not None

    # -- argument builders ------------------------------------------------

    def ps_args(self, project: str) -> list[str]:
        return [
            self.cli,
            "ps",
            "--filter",
            f"label={COMPOSE_PROJECT_LABEL}={project}",
            "--format",
            "{{json .}}",
        ]

    def logs_args(self, container: str, tail: int) -> list[str]:
        return [self.cli, "logs", "--follow", "--tail", str(tail), container]

    def exec_args(self, container: str, command: list[str]) -> list[str]:
        return [self.cli, "exec", "-i", container, *command]

    # -- execution --------------------------------------------------------

    async def run(self, args: list[str]) -> CommandResult:
        """Run *args* to completion, capturing both output streams."""
        try:
            process = await asyncio.create_subprocess_exec(*args, stdout=PIPE, stderr=PIPE)
        except OSError as exc:
            return CommandResult(returncode=None, stdout="", stderr="", start_error=str(exc))

        stdout, stderr = await process.communicate()
        return CommandResult(
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace").strip(),
        )

    async def spawn(
        self,
        args: list[str],
        *,
        stdin: bool = False,
        limit: int = 2**16,
    ) -> asyncio.subprocess.Process:
        """Start a long-lived process with piped stdout/stderr.

        *limit* bounds the StreamReader buffer and therefore the longest line
        ``readline()`` will return.
        """
        return await asyncio.create_subprocess_exec(
            *args,
            stdin=PIPE if stdin else DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
            limit=limit,
        )


_runtime: ContainerRuntime | None = None


def get_runtime() -> ContainerRuntime:
    """Lazy singleton built from ``[runtime] cli``."""
    global _runtime  # noqa: PLW0603
    if _runtime is None:
        _runtime = ContainerRuntime(cli=get_settings().runtime.cli)
        if not _runtime.is_available():
            logger.warning("Container runtime CLI not found on PATH", cli=_runtime.cli)
        else:
            logger.info("Container runtime selected", cli=_runtime.cli)
    return _runtime


def reset_runtime() -> None:
    """Clear the cached runtime (for tests)."""
    global _runtime  # noqa: PLW0603
    _runtime = None

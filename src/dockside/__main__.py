"""Entry point for `python -m dockside` / `dockside`.

Subcommands:
    dockside                         Run the HTTP/WebSocket server (default)
    dockside services <attempt-id>   Print an attempt's compose services as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
import sys
from uuid import UUID


async def _serve(host: str, port: int) -> None:
    from dockside import db
    from dockside.http_server import DefaultDeps, start_http_server

    await db.init_database()
    runner = await start_http_server(DefaultDeps(), host, port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        # Cleanup cancels open WebSocket handlers, which reaps their processes
        await runner.cleanup()
        await db.close_database()


async def _services(attempt_id: str) -> int:
    from dockside import db
    from dockside.discovery import fetch_compose_services
    from dockside.errors import ContainerApiError, NotFoundError, NotProvisionedError
    from dockside.identifiers import resolve_compose_project

    try:
        parsed_id = UUID(attempt_id)
    except ValueError:
        print(f"INVALID_IDENTIFIER: '{attempt_id}' is not a valid attempt id.", file=sys.stderr)
        return 1

    await db.init_database()
    try:
        attempt = await db.find_attempt_by_id(parsed_id)
        if attempt is None:
            raise NotFoundError("Task attempt not found.")
        if attempt.container_ref is None:
            raise NotProvisionedError("This attempt does not have a container reference yet.")
        services = await fetch_compose_services(resolve_compose_project(attempt.container_ref))
    except ContainerApiError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await db.close_database()

    print(json.dumps([s.to_dict() for s in services], indent=2))
    return 0


def main() -> None:
    from dockside.config import get_settings
    from dockside.logger import configure

    s = get_settings()
    configure(s.logging.level, s.logging.format)

    parser = argparse.ArgumentParser(
        prog="dockside",
        description="Container log/shell relay and compose service discovery",
    )
    parser.add_argument("--host", default=s.server.host, help="Bind address")
    parser.add_argument("--port", type=int, default=s.server.port, help="Bind port")
    sub = parser.add_subparsers(dest="command")
    services = sub.add_parser("services", help="List an attempt's compose services")
    services.add_argument("attempt_id")

    args = parser.parse_args()

    match args.command:
        case "services":
            sys.exit(asyncio.run(_services(args.attempt_id)))
        case _:
            asyncio.run(_serve(args.host, args.port))


if __name__ == "__main__":
    main()

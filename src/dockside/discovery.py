"""Compose service discovery.

Lists the running containers that carry a compose project's label and maps
each ``docker ps`` JSON row into a :class:`ServiceRecord`.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dockside.config import get_settings
from dockside.errors import CommandFailedError
from dockside.logger import logger
from dockside.runtime import ContainerRuntime, get_runtime
from dockside.types import ServiceRecord

_REPLICA_SUFFIX_RE = re.compile(r"^(?P<service>.*)-[0-9]+$")


class DockerPsRow(BaseModel):
    """One line of ``docker ps --format '{{json .}}'``."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(alias="ID")
    names: str = Field(alias="Names")
    state: str = Field(alias="State")
    status: str = Field(alias="Status")
    image: str = Field(alias="Image")
    ports: str = Field(alias="Ports")


def derive_service_name(container_name: str, project: str) -> tuple[str, bool]:
    """Return ``(service, routable)`` for a compose container name.

    ``proj-web-2`` under ``proj`` gives ``("web", True)``. When stripping the
    ``<project>-`` prefix and the replica index leaves nothing, the name with
    only the bare project prefix removed is returned and ``routable`` is
    False, meaning no browser URL can be built from it.
    """
    remainder = container_name.removeprefix(f"{project}-")
    if match := _REPLICA_SUFFIX_RE.match(remainder):
        remainder = match.group("service")
    service = remainder.strip("-")
    if service:
        return service, True
    return container_name.removeprefix(project).strip("-"), False


def parse_ports(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def map_row_to_service(row: DockerPsRow, project: str, domain_suffix: str) -> ServiceRecord:
    service, routable = derive_service_name(row.names, project)
    browser_url = f"http://{service}.{project}.{domain_suffix}" if routable else None
    return ServiceRecord(
        container_id=row.id,
        container_name=row.names,
        service=service,
        state=row.state,
        status=row.status,
        image=row.image,
        ports=parse_ports(row.ports),
        compose_project=project,
        browser_url=browser_url,
    )


def parse_ps_output(stdout: str, project: str, domain_suffix: str) -> list[ServiceRecord]:
    """Parse one JSON row per line; malformed rows are logged and skipped."""
    services: list[ServiceRecord] = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        try:
            row = DockerPsRow.model_validate_json(line)
        except ValidationError as exc:
            logger.warning(
                "Failed to parse docker ps row",
                project=project,
                line=line[:200],
                err=str(exc).splitlines()[0],
            )
            continue
        services.append(map_row_to_service(row, project, domain_suffix))
    return services


async def fetch_compose_services(
    project: str,
    runtime: ContainerRuntime | None = None,
) -> list[ServiceRecord]:
    """List the running services of an (already sanitized) compose project."""
    runtime = runtime or get_runtime()
    result = await runtime.run(runtime.ps_args(project))

    if result.start_error is not None:
        raise CommandFailedError(f"{runtime.cli} ps", result.start_error)
    if not result.ok:
        logger.warning(
            "docker ps failed",
            project=project,
            exit_code=result.returncode,
            stderr=result.stderr[-500:],
        )
        raise CommandFailedError(f"{runtime.cli} ps", result.stderr)

    services = parse_ps_output(result.stdout, project, get_settings().runtime.local_domain_suffix)
    logger.debug("Discovered compose services", project=project, count=len(services))
    return services

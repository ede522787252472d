"""Data models for dockside."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class ServiceRecord:
    """One running container of a compose project, as shown to API callers."""

    container_id: str
    container_name: str
    service: str
    state: str
    status: str
    image: str
    compose_project: str
    ports: tuple[str, ...] = ()
    browser_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "containerId": self.container_id,
            "containerName": self.container_name,
            "service": self.service,
            "state": self.state,
            "status": self.status,
            "image": self.image,
            "ports": list(self.ports),
            "composeProject": self.compose_project,
            "browserUrl": self.browser_url,
        }


@dataclass
class TaskAttempt:
    id: UUID
    task_id: UUID
    project_id: UUID
    container_ref: str | None = None  # None until the first run provisions it
    created_at: str = ""


@dataclass(frozen=True)
class ContainerInfo:
    attempt_id: UUID
    task_id: UUID
    project_id: UUID

    def to_dict(self) -> dict[str, str]:
        return {
            "attemptId": str(self.attempt_id),
            "taskId": str(self.task_id),
            "projectId": str(self.project_id),
        }

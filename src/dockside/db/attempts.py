"""Task attempts and container-reference lookups."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from uuid import UUID

import aiosqlite

from dockside.db._connection import _get_db
from dockside.errors import NotFoundError
from dockside.types import ContainerInfo, TaskAttempt

_PATH_SEPARATORS_RE = re.compile(r"[\\/]")


def _row_to_attempt(row: aiosqlite.Row) -> TaskAttempt:
    return TaskAttempt(
        id=UUID(row["id"]),
        task_id=UUID(row["task_id"]),
        project_id=UUID(row["project_id"]),
        container_ref=row["container_ref"],
        created_at=row["created_at"],
    )


def _final_segment(container_ref: str) -> str:
    parts = [p for p in _PATH_SEPARATORS_RE.split(container_ref.strip()) if p]
    return parts[-1] if parts else ""


async def create_task_attempt(
    attempt_id: UUID,
    task_id: UUID,
    project_id: UUID,
    container_ref: str | None = None,
) -> TaskAttempt:
    db = _get_db()
    created_at = datetime.now(UTC).isoformat()
    await db.execute(
        """INSERT INTO task_attempts (id, task_id, project_id, container_ref, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (str(attempt_id), str(task_id), str(project_id), container_ref, created_at),
    )
    await db.commit()
    return TaskAttempt(
        id=attempt_id,
        task_id=task_id,
        project_id=project_id,
        container_ref=container_ref,
        created_at=created_at,
    )


async def set_container_ref(attempt_id: UUID, container_ref: str | None) -> None:
    """Record the container reference once an attempt has been provisioned."""
    db = _get_db()
    cursor = await db.execute(
        "UPDATE task_attempts SET container_ref = ? WHERE id = ?",
        (container_ref, str(attempt_id)),
    )
    await db.commit()
    if cursor.rowcount == 0:
        raise NotFoundError("Task attempt not found.")


async def find_attempt_by_id(attempt_id: UUID) -> TaskAttempt | None:
    db = _get_db()
    cursor = await db.execute("SELECT * FROM task_attempts WHERE id = ?", (str(attempt_id),))
    row = await cursor.fetchone()
    return _row_to_attempt(row) if row else None


async def resolve_container_ref(container_ref: str) -> ContainerInfo:
    """Find the attempt owning *container_ref*.

    An exact match wins. Otherwise a bare name matches the attempt whose
    (path-like) reference ends in that component; the newest attempt wins.
    """
    db = _get_db()
    cursor = await db.execute(
        "SELECT * FROM task_attempts WHERE container_ref = ? ORDER BY created_at DESC LIMIT 1",
        (container_ref,),
    )
    row = await cursor.fetchone()

    if row is None:
        needle = _final_segment(container_ref)
        if needle:
            cursor = await db.execute(
                """SELECT * FROM task_attempts
                   WHERE container_ref IS NOT NULL AND instr(container_ref, ?) > 0
                   ORDER BY created_at DESC""",
                (needle,),
            )
            for candidate in await cursor.fetchall():
                if _final_segment(candidate["container_ref"]) == needle:
                    row = candidate
                    break

    if row is None:
        raise NotFoundError(f"No task attempt owns container reference '{container_ref}'.")

    attempt = _row_to_attempt(row)
    return ContainerInfo(
        attempt_id=attempt.id,
        task_id=attempt.task_id,
        project_id=attempt.project_id,
    )

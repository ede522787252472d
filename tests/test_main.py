"""Tests for the ``dockside services`` subcommand."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from dockside.__main__ import _services
from dockside.db import _init_test_database, create_task_attempt
from dockside.errors import CommandFailedError
from dockside.types import ServiceRecord


@pytest.fixture(autouse=True)
async def _setup_db():
    await _init_test_database()
    # The command opens and closes the store itself; keep the in-memory one
    with (
        patch("dockside.db.init_database", AsyncMock()),
        patch("dockside.db.close_database", AsyncMock()),
    ):
        yield


async def test_prints_services_as_json(capsys):
    attempt_id = uuid4()
    await create_task_attempt(attempt_id, uuid4(), uuid4(), "/var/worktrees/proj")
    record = ServiceRecord(
        container_id="c1",
        container_name="proj-web-1",
        service="web",
        state="running",
        status="Up",
        image="nginx",
        compose_project="proj",
    )
    with patch(
        "dockside.discovery.fetch_compose_services", AsyncMock(return_value=[record])
    ) as fetch:
        assert await _services(str(attempt_id)) == 0

    fetch.assert_awaited_once_with("proj")
    out = json.loads(capsys.readouterr().out)
    assert out[0]["containerName"] == "proj-web-1"


async def test_invalid_attempt_id(capsys):
    assert await _services("nope") == 1
    assert "INVALID_IDENTIFIER" in capsys.readouterr().err


async def test_unknown_attempt(capsys):
    assert await _services(str(uuid4())) == 1
    assert "NOT_FOUND:" in capsys.readouterr().err


async def test_unprovisioned_attempt(capsys):
    attempt_id = uuid4()
    await create_task_attempt(attempt_id, uuid4(), uuid4())
    assert await _services(str(attempt_id)) == 1
    assert "NOT_PROVISIONED:" in capsys.readouterr().err


async def test_runtime_failure(capsys):
    attempt_id = uuid4()
    await create_task_attempt(attempt_id, uuid4(), uuid4(), "proj")
    with patch(
        "dockside.discovery.fetch_compose_services",
        AsyncMock(side_effect=CommandFailedError("docker ps", "boom")),
    ):
        assert await _services(str(attempt_id)) == 1
    assert "COMMAND_FAILED:" in capsys.readouterr().err

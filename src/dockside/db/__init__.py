"""SQLite metadata store.

All functions are async using aiosqlite.
Module-level connection, initialized by init_database().

  _connection  — schema, init, teardown
  attempts     — task attempts and container-reference lookups
"""

from dockside.db._connection import (
    _get_db,
    _init_test_database,
    close_database,
    init_database,
)
from dockside.db.attempts import (
    create_task_attempt,
    find_attempt_by_id,
    resolve_container_ref,
    set_container_ref,
)

__all__ = [
    "_get_db",
    "_init_test_database",
    "close_database",
    "create_task_attempt",
    "find_attempt_by_id",
    "init_database",
    "resolve_container_ref",
    "set_container_ref",
]

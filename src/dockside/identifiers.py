"""Identifier validation and container-reference resolution.

Every externally supplied token goes through :func:`sanitize_identifier`
before it is placed in a runtime CLI argument list or a label filter.
"""

from __future__ import annotations

import re

from dockside.errors import InvalidIdentifierError, NotProvisionedError, ResolutionFailedError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_PATH_SEPARATORS_RE = re.compile(r"[\\/]")


def sanitize_identifier(value: str) -> str:
    """Return *value* unchanged if it is a safe identifier, else raise."""
    # fullmatch on an ASCII-only class; "$" alone would accept a trailing newline
    if not value or _IDENTIFIER_RE.fullmatch(value) is None:
        raise InvalidIdentifierError(value)
    return value


def resolve_compose_project(container_ref: str) -> str:
    """Derive the compose project name from an attempt's container reference.

    Path-like references (worktree directories) resolve to their final path
    component; bare tokens are used as-is.
    """
    trimmed = container_ref.strip()
    if not trimmed:
        raise NotProvisionedError(
            "Container reference is empty; run the attempt once to provision it."
        )

    if _PATH_SEPARATORS_RE.search(trimmed) is None:
        return sanitize_identifier(trimmed)

    segments = [s for s in _PATH_SEPARATORS_RE.split(trimmed) if s not in ("", ".")]
    if not segments or segments[-1] == "..":
        raise ResolutionFailedError("Failed to derive compose project from container reference.")
    return sanitize_identifier(segments[-1])

"""Error taxonomy shared by the discovery API and the session relays.

Every error carries a stable ``code`` and the HTTP ``status`` the API layer
responds with. Relays raise :class:`StreamError` only after a session is open;
by then the HTTP status is irrelevant and the error is only logged.
"""

from __future__ import annotations


class ContainerApiError(Exception):
    """Base class, rendered as a failed response envelope by the HTTP layer."""

    code = "INTERNAL"
    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ContainerApiError):
    code = "NOT_FOUND"
    status = 404


class NotProvisionedError(ContainerApiError):
    """The attempt exists but has no container reference yet."""

    code = "NOT_PROVISIONED"
    status = 409


class InvalidIdentifierError(ContainerApiError):
    code = "INVALID_IDENTIFIER"
    status = 400

    def __init__(self, value: str, message: str | None = None) -> None:
        super().__init__(message or f"Identifier '{value}' contains unsupported characters.")
        self.value = value


class ResolutionFailedError(ContainerApiError):
    code = "RESOLUTION_FAILED"
    status = 409


class CommandFailedError(ContainerApiError):
    """The runtime CLI exited non-zero; ``stderr`` holds its diagnostic text."""

    code = "COMMAND_FAILED"
    status = 502

    def __init__(self, command: str, stderr: str) -> None:
        super().__init__(f"{command} failed: {stderr}")
        self.command = command
        self.stderr = stderr


class StreamError(ContainerApiError):
    code = "STREAM_ERROR"
    status = 500

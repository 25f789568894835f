"""Typed errors raised by the tool-protocol client."""

from __future__ import annotations

import enum

from strand.exceptions import StrandError


class McpErrorType(str, enum.Enum):
    """Why a tool-protocol operation failed."""

    CONNECTION_ERROR = "connection_error"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    RESOURCE_CLOSED_ERROR = "resource_closed_error"
    TIMEOUT_ERROR = "timeout_error"
    INVALID_SCHEMA_ERROR = "invalid_schema_error"


class McpError(StrandError):
    """A tool-protocol failure.

    Attributes:
        error_type: Failure category.
        original: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        error_type: McpErrorType,
        original: BaseException | None = None,
    ) -> None:
        self.error_type = error_type
        self.original = original
        super().__init__(message)


_CLOSED_MARKERS = ("closed", "ECONNRESET", "socket hang up", "Connection reset")


def is_closed_resource_error(exc: BaseException) -> bool:
    """True for errors that a reconnect can fix."""
    if isinstance(exc, McpError) and exc.error_type is McpErrorType.RESOURCE_CLOSED_ERROR:
        return True
    message = str(exc)
    return any(marker in message for marker in _CLOSED_MARKERS)

"""Tool-protocol client with reconnect-and-retry.

Every operation runs through ``_with_reconnect``: when the transport
reports a closed or reset connection, the client tears the connection
down, initializes a fresh one and tries again, up to ``max_retries``
extra attempts. Exhausting the retries surfaces a ``connection_error``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

import tenacity
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from strand._version import __version__
from strand.tools.mcp.errors import McpError, McpErrorType, is_closed_resource_error
from strand.tools.mcp.transport import McpTransport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

T = TypeVar("T")


class McpToolSpec(BaseModel):
    """A tool advertised by a server."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )


class McpClient:
    """Client for one tool server.

    Args:
        transport: Channel to the server.
        max_retries: Reconnect attempts after a closed-connection error.
        retry_delay: Seconds to wait before each reconnect.

    Usage::

        client = McpClient(HttpMcpTransport(url))
        specs = client.list_tools()
        result = client.call_tool("search", {"q": "weather"})
    """

    def __init__(
        self,
        transport: McpTransport,
        *,
        max_retries: int = 2,
        retry_delay: float = 0.0,
    ) -> None:
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.server_info: Optional[dict[str, Any]] = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Connect and perform the protocol handshake if not done yet."""
        if self._initialized:
            return
        try:
            self.transport.connect()
        except McpError:
            raise
        except Exception as exc:
            raise McpError(
                f"Failed to connect: {exc}", McpErrorType.CONNECTION_ERROR, exc
            ) from exc

        result = self.transport.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "strand", "version": __version__},
            },
        )
        self.server_info = (result or {}).get("serverInfo")
        self.transport.notify("notifications/initialized")
        self._initialized = True
        logger.debug("Initialized tool server %s", self.server_info)

    def reinitialize(self) -> None:
        """Drop the current connection and handshake again."""
        logger.debug("Reinitializing tool server connection")
        self.close()
        self.initialize()

    def close(self) -> None:
        self._initialized = False
        self.transport.close()

    def _before_retry(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Tool server connection closed (%s); reconnecting, attempt %d/%d",
            exc,
            retry_state.attempt_number + 1,
            self.max_retries + 1,
        )
        self.reinitialize()

    def _with_reconnect(self, operation: Callable[[], T]) -> T:
        def attempt() -> T:
            self.initialize()
            return operation()

        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(is_closed_resource_error),
            wait=tenacity.wait_fixed(self.retry_delay),
            stop=tenacity.stop_after_attempt(self.max_retries + 1),
            before_sleep=self._before_retry,
        )
        try:
            return retryer(attempt)
        except tenacity.RetryError as exc:
            last = exc.last_attempt.exception()
            raise McpError(
                f"Connection failed after {self.max_retries + 1} attempts: {last}",
                McpErrorType.CONNECTION_ERROR,
                last,
            ) from last

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def list_tools(self) -> list[McpToolSpec]:
        """Fetch the server's tool list.

        Raises:
            McpError: ``invalid_schema_error`` if a tool definition is
                malformed; ``connection_error`` if reconnects are exhausted.
        """
        result = self._with_reconnect(lambda: self.transport.request("tools/list"))
        raw_tools = (result or {}).get("tools", [])
        specs: list[McpToolSpec] = []
        for raw in raw_tools:
            try:
                spec = McpToolSpec.model_validate(raw)
            except ValidationError as exc:
                raise McpError(
                    f"Invalid tool definition: {exc}", McpErrorType.INVALID_SCHEMA_ERROR, exc
                ) from exc
            if spec.input_schema.get("type", "object") != "object":
                raise McpError(
                    f"Tool {spec.name} input schema must be an object",
                    McpErrorType.INVALID_SCHEMA_ERROR,
                )
            specs.append(spec)
        return specs

    def call_tool(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Invoke a server tool.

        Raises:
            McpError: ``tool_execution_error`` if the server reports a
                failure; ``connection_error`` if reconnects are exhausted.
        """
        result = self._with_reconnect(
            lambda: self.transport.request("tools/call", {"name": name, "arguments": args})
        )
        result = dict(result or {})
        if result.pop("isError", False):
            raise McpError(
                f"Error calling tool '{name}': {_content_text(result)}",
                McpErrorType.TOOL_EXECUTION_ERROR,
            )
        return result


def _content_text(result: dict[str, Any]) -> str:
    parts = result.get("content") or []
    return "\n".join(p.get("text", "") for p in parts if isinstance(p, dict))

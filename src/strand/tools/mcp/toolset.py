"""Expose a tool server's tools to agents."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from strand.llm.models import FunctionDeclaration
from strand.tools.base import BaseTool, BaseToolset
from strand.tools.mcp.client import McpClient, McpToolSpec
from strand.tools.mcp.errors import McpError
from strand.tools.mcp.transport import HttpMcpTransport

if TYPE_CHECKING:
    from strand.agents.callback_context import ReadonlyContext
    from strand.tools.context import ToolContext

logger = logging.getLogger(__name__)


class McpConfig(BaseModel):
    """Connection settings for an HTTP tool server.

    Attributes:
        url: JSON-RPC endpoint.
        headers: Extra request headers (e.g. authorization).
        timeout: Per-request timeout in seconds.
        max_retries: Reconnect attempts after a closed connection.
        retry_delay: Seconds to wait before each reconnect.
        tool_filter: Only expose these tool names (all when None).
    """

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = 30.0
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=0.5, ge=0)
    tool_filter: Optional[list[str]] = None


class McpTool(BaseTool):
    """A server tool callable by the model.

    Protocol failures are returned as ``{"error": <error type>, "message": ...}``
    so the model can react to them.
    """

    def __init__(self, spec: McpToolSpec, client: McpClient) -> None:
        super().__init__(
            name=spec.name,
            description=spec.description or f"Call the {spec.name} tool.",
        )
        self.spec = spec
        self.client = client

    def get_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.spec.input_schema,
        )

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        # Arguments are forwarded untouched; the server applies its own coercion.
        super().validate_args(args)
        return dict(args)

    def run(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        try:
            result = self.client.call_tool(self.name, args)
        except McpError as exc:
            logger.warning("Tool server call %s failed: %s", self.name, exc)
            return {"error": exc.error_type.value, "message": str(exc), "tool": self.name}

        texts = [
            part.get("text", "")
            for part in result.get("content") or []
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        if len(texts) == 1:
            try:
                parsed = json.loads(texts[0])
            except ValueError:
                return {"result": texts[0]}
            return parsed if isinstance(parsed, dict) else {"result": parsed}
        return result


class McpToolset(BaseToolset):
    """Lists a server's tools once and wraps each as an ``McpTool``.

    Usage::

        toolset = McpToolset(McpConfig(url="http://localhost:8080/mcp"))
        agent = LlmAgent(name="helper", model="gpt-4o-mini", tools=[toolset])
    """

    def __init__(self, config: McpConfig | None = None, *, client: McpClient | None = None) -> None:
        if client is None:
            if config is None:
                raise ValueError("McpToolset needs a config or a client")
            client = McpClient(
                HttpMcpTransport(config.url, headers=config.headers, timeout=config.timeout),
                max_retries=config.max_retries,
                retry_delay=config.retry_delay,
            )
        self.client = client
        self.tool_filter = config.tool_filter if config is not None else None
        self._tools: list[BaseTool] | None = None

    def get_tools(self, context: ReadonlyContext | None = None) -> list[BaseTool]:
        if self._tools is None:
            specs = self.client.list_tools()
            self._tools = [
                McpTool(spec, self.client)
                for spec in specs
                if self.tool_filter is None or spec.name in self.tool_filter
            ]
            logger.debug("Loaded %d tools from tool server", len(self._tools))
        return list(self._tools)

    def close(self) -> None:
        self.client.close()
        self._tools = None

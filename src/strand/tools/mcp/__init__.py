"""Tool-protocol (JSON-RPC) client and toolset."""

from strand.tools.mcp.client import McpClient, McpToolSpec
from strand.tools.mcp.errors import McpError, McpErrorType
from strand.tools.mcp.toolset import McpConfig, McpTool, McpToolset
from strand.tools.mcp.transport import HttpMcpTransport, McpTransport

__all__ = [
    "HttpMcpTransport",
    "McpClient",
    "McpConfig",
    "McpError",
    "McpErrorType",
    "McpTool",
    "McpToolSpec",
    "McpToolset",
    "McpTransport",
]

"""Transports for the tool protocol.

A transport moves JSON-RPC 2.0 messages. ``HttpMcpTransport`` posts each
message to a single endpoint with httpx and keeps the server-assigned
session id between requests.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from strand.tools.mcp.errors import McpError, McpErrorType, is_closed_resource_error

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


@runtime_checkable
class McpTransport(Protocol):
    """Request/response channel to a tool server."""

    def connect(self) -> None: ...

    def request(self, method: str, params: dict[str, Any] | None = None) -> Any: ...

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None: ...

    def close(self) -> None: ...


class HttpMcpTransport:
    """JSON-RPC 2.0 over HTTP POST.

    Args:
        url: Server endpoint.
        headers: Extra headers sent with every request.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).

    Usage::

        transport = HttpMcpTransport("http://localhost:8080/mcp")
        transport.connect()
        tools = transport.request("tools/list")
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._session_id: str | None = None
        self._ids = itertools.count(1)

    def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.Client(
            timeout=self._timeout,
            headers={"Accept": "application/json", **self._headers},
            transport=self._transport,
        )

    def _post(self, message: dict[str, Any]) -> httpx.Response:
        if self._client is None:
            raise McpError("Transport is closed", McpErrorType.RESOURCE_CLOSED_ERROR)
        headers = {SESSION_HEADER: self._session_id} if self._session_id else {}
        try:
            response = self._client.post(self.url, json=message, headers=headers)
        except httpx.TimeoutException as exc:
            raise McpError(f"Request timed out: {exc}", McpErrorType.TIMEOUT_ERROR, exc) from exc
        except httpx.TransportError as exc:
            error_type = (
                McpErrorType.RESOURCE_CLOSED_ERROR
                if is_closed_resource_error(exc)
                else McpErrorType.CONNECTION_ERROR
            )
            raise McpError(f"Transport error: {exc}", error_type, exc) from exc

        if response.status_code == 404 and self._session_id:
            # The server forgot our session; a reconnect starts a new one.
            raise McpError("Server session closed", McpErrorType.RESOURCE_CLOSED_ERROR)
        if response.status_code >= 400:
            raise McpError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                McpErrorType.CONNECTION_ERROR,
            )
        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id
        return response

    def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            message["params"] = params
        logger.debug("MCP request %s", method)
        response = self._post(message)
        try:
            body = response.json()
        except ValueError as exc:
            raise McpError(
                f"Invalid JSON-RPC response: {exc}", McpErrorType.CONNECTION_ERROR, exc
            ) from exc

        error = body.get("error")
        if error:
            raise McpError(
                f"{method} failed ({error.get('code')}): {error.get('message')}",
                McpErrorType.TOOL_EXECUTION_ERROR,
            )
        return body.get("result")

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        self._post(message)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._session_id = None

"""Context handed to a running tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from strand.agents.callback_context import CallbackContext

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.actions import EventActions
    from strand.memory.base import SearchMemoryResponse
    from strand.models.auth import AuthConfig


class ToolContext(CallbackContext):
    """Per-call view of the invocation.

    State writes land in ``actions.state_delta`` and are committed with the
    function-response event that carries this call's result.

    Attributes:
        function_call_id: Id of the function call being executed.
    """

    def __init__(
        self,
        invocation_context: InvocationContext,
        *,
        function_call_id: str | None = None,
        event_actions: EventActions | None = None,
    ) -> None:
        super().__init__(invocation_context, event_actions)
        self.function_call_id = function_call_id

    @property
    def invocation_context(self) -> InvocationContext:
        return self._invocation_context

    def request_credential(self, auth_config: AuthConfig) -> None:
        """Ask the end user for a credential before this call can finish.

        Raises:
            ValueError: If the call has no id to correlate the answer with.
        """
        if not self.function_call_id:
            raise ValueError("function_call_id is not set.")
        self.actions.requested_auth_configs[self.function_call_id] = auth_config

    def get_credential(self, auth_config: AuthConfig) -> Any | None:
        """Credential supplied by the user for ``auth_config`` this turn, if any."""
        return self._invocation_context.credentials.get(auth_config.get_credential_key())

    def list_artifacts(self) -> list[str]:
        """Filenames of artifacts attached to the session.

        Raises:
            ValueError: If no artifact service is configured.
        """
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        return ctx.artifact_service.list_artifact_keys(
            app_name=ctx.app_name, user_id=ctx.user_id, session_id=ctx.session.id
        )

    def search_memory(self, query: str) -> SearchMemoryResponse:
        """Search the user's long-term memory.

        Raises:
            ValueError: If no memory service is configured.
        """
        ctx = self._invocation_context
        if ctx.memory_service is None:
            raise ValueError("Memory service is not available.")
        return ctx.memory_service.search_memory(
            app_name=ctx.app_name, user_id=ctx.user_id, query=query
        )

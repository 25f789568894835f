"""Views of an InvocationContext handed to callbacks.

``ReadonlyContext`` exposes identity and a read-only state snapshot.
``CallbackContext`` adds a ``State`` bound to an EventActions delta plus
artifact access; every write it performs is recorded in that delta and
reaches the session only when the carrying event is appended.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from strand.events.actions import EventActions
from strand.sessions.state import State

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.models.content import Content, Part


class ReadonlyContext:
    """Read-only view of an invocation."""

    def __init__(self, invocation_context: InvocationContext) -> None:
        self._invocation_context = invocation_context

    @property
    def invocation_id(self) -> str:
        return self._invocation_context.invocation_id

    @property
    def agent_name(self) -> str:
        return self._invocation_context.agent.name

    @property
    def user_content(self) -> Content | None:
        return self._invocation_context.user_content

    @property
    def state(self) -> Mapping[str, Any]:
        return MappingProxyType(self._invocation_context.session.state)


class CallbackContext(ReadonlyContext):
    """Mutable view used by agent and model callbacks.

    Attributes:
        actions: The manifest that will ride on the next event the
            framework emits for this callback.
    """

    def __init__(
        self,
        invocation_context: InvocationContext,
        event_actions: EventActions | None = None,
    ) -> None:
        super().__init__(invocation_context)
        self.actions = event_actions or EventActions()
        self._state = State(invocation_context.session.state, self.actions.state_delta)

    @property
    def state(self) -> State:  # type: ignore[override]
        return self._state

    def end_invocation(self) -> None:
        """Stop the invocation at the next step boundary."""
        self._invocation_context.end_invocation = True

    def load_artifact(self, filename: str, version: int | None = None) -> Part | None:
        """Load an artifact attached to the current session.

        Raises:
            ValueError: If no artifact service is configured.
        """
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        return ctx.artifact_service.load_artifact(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            session_id=ctx.session.id,
            filename=filename,
            version=version,
        )

    def save_artifact(self, filename: str, artifact: Part) -> int:
        """Save an artifact and record its version in the artifact delta.

        Raises:
            ValueError: If no artifact service is configured.
        """
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        version = ctx.artifact_service.save_artifact(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            session_id=ctx.session.id,
            filename=filename,
            artifact=artifact,
        )
        self.actions.artifact_delta[filename] = version
        return version

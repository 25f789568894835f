"""Per-turn execution context.

The Runner creates one InvocationContext per top-level turn. Agents derive
copies of it as control moves between them: ``for_agent`` keeps the same
invocation (sequential children, transfers), ``create_child_context``
starts a nested invocation with its own id and branch (parallel branches,
graph nodes, agents used as tools).

All contexts derived from one turn share the LLM-call counter. Ending an
invocation is visible to every context derived from it, never to its
ancestors.
"""

from __future__ import annotations

import dataclasses
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from strand.exceptions import LlmCallsLimitExceededError
from strand.models.config import RunConfig

if TYPE_CHECKING:
    from strand.agents.base import BaseAgent
    from strand.artifacts.base import BaseArtifactService
    from strand.llm.registry import ModelRegistry
    from strand.memory.base import BaseMemoryService
    from strand.models.content import Content
    from strand.sessions.base import BaseSessionService
    from strand.sessions.session import Session


def new_invocation_id() -> str:
    """Return a fresh invocation id."""
    return f"e-{uuid.uuid4()}"


class CancellationToken:
    """Cooperative cancellation flag linked to its parent.

    A token reports cancelled when it or any ancestor was cancelled.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled()

    def child(self) -> CancellationToken:
        return CancellationToken(self)


class LlmCallCounter:
    """Thread-safe model-call counter shared across one turn."""

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        return self._count

    def increment(self, limit: int) -> int:
        """Count one call.

        Raises:
            LlmCallsLimitExceededError: If ``limit`` > 0 and the count
                now exceeds it.
        """
        with self._lock:
            self._count += 1
            if limit > 0 and self._count > limit:
                raise LlmCallsLimitExceededError(limit)
            return self._count


@dataclass
class InvocationContext:
    """State for one invocation of an agent.

    Attributes:
        session_service: Where events are appended.
        invocation_id: Id stamped on every event of this invocation.
        agent: The agent currently executing.
        session: The caller's session handle (shared, never copied).
        branch: Dot-separated agent path used to hide sibling history.
        user_content: The user message that started the turn.
        artifact_service: Optional artifact collaborator.
        memory_service: Optional memory collaborator.
        model_registry: Resolves agents' string model names.
        run_config: Runtime limits and modes.
        credentials: Credentials supplied by the user during this turn,
            keyed by credential key. Never persisted.
        parent_invocation_id: Invocation this one was derived from.
    """

    session_service: BaseSessionService
    invocation_id: str
    agent: BaseAgent
    session: Session
    branch: str | None = None
    user_content: Content | None = None
    artifact_service: BaseArtifactService | None = None
    memory_service: BaseMemoryService | None = None
    model_registry: ModelRegistry | None = None
    run_config: RunConfig = field(default_factory=RunConfig)
    credentials: dict[str, Any] = field(default_factory=dict)
    parent_invocation_id: str | None = None
    call_counter: LlmCallCounter = field(default_factory=LlmCallCounter)
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def app_name(self) -> str:
        return self.session.app_name

    @property
    def user_id(self) -> str:
        return self.session.user_id

    # ------------------------------------------------------------------
    # Limits and cancellation
    # ------------------------------------------------------------------

    @property
    def end_invocation(self) -> bool:
        """True once this invocation (or one it derives from) was ended."""
        return self.cancellation.is_cancelled()

    @end_invocation.setter
    def end_invocation(self, value: bool) -> None:
        if not value:
            raise ValueError("An ended invocation cannot be resumed")
        self.cancellation.cancel()

    def increment_llm_call_count(self) -> int:
        """Count one model call against the turn's ceiling.

        Raises:
            LlmCallsLimitExceededError: When the ceiling is exceeded.
        """
        return self.call_counter.increment(self.run_config.max_llm_calls)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def for_agent(self, agent: BaseAgent) -> InvocationContext:
        """Same invocation, different executing agent."""
        return dataclasses.replace(self, agent=agent)

    def create_child_context(self, agent: BaseAgent) -> InvocationContext:
        """Start a nested invocation for ``agent``.

        The child shares the session, services, credentials and call
        counter, gets a fresh invocation id, and extends the branch with
        the agent's name.
        """
        branch = f"{self.branch}.{agent.name}" if self.branch else agent.name
        return dataclasses.replace(
            self,
            invocation_id=new_invocation_id(),
            agent=agent,
            branch=branch,
            parent_invocation_id=self.invocation_id,
            cancellation=self.cancellation.child(),
        )

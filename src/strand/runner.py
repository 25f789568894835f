"""Top-level orchestration: turns, resumption, rewind and compaction.

A ``Runner`` binds a root agent to its collaborators. ``run`` appends the
user's message, picks the agent that should continue the conversation,
drives it, and commits every finished event to the session before handing
it to the caller. Partial (streaming) events are passed through without
being stored.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Iterator, Optional

from strand.agents.base import AgentKind
from strand.agents.invocation_context import InvocationContext, new_invocation_id
from strand.artifacts.in_memory import InMemoryArtifactService
from strand.events.actions import EventActions
from strand.events.compaction import run_compaction
from strand.events.event import Event
from strand.events.history import filter_rewound_events
from strand.exceptions import InvocationNotFoundError, SessionNotFoundError
from strand.flows.functions import REQUEST_CREDENTIAL, find_matching_function_call
from strand.memory.in_memory import InMemoryMemoryService
from strand.models.config import RunConfig
from strand.models.content import Content, FunctionCall, Part
from strand.sessions.in_memory import InMemorySessionService
from strand.sessions.state import APP_PREFIX, TEMP_PREFIX, USER_PREFIX

if TYPE_CHECKING:
    from strand.agents.base import BaseAgent
    from strand.artifacts.base import BaseArtifactService
    from strand.events.compaction import CompactionConfig
    from strand.llm.registry import ModelRegistry
    from strand.memory.base import BaseMemoryService
    from strand.sessions.base import BaseSessionService
    from strand.sessions.session import Session

logger = logging.getLogger(__name__)

TIMED_OUT = "Timed out"


class Runner:
    """Runs an agent tree against a session store.

    Args:
        app_name: Application name sessions are stored under.
        agent: Root of the agent tree.
        session_service: Session storage; the only writer of session state.
        artifact_service: Optional artifact storage exposed to tools.
        memory_service: Optional long-term memory exposed to tools.
        model_registry: Resolves string model names on agents.
        compaction_config: Enables history compaction after each turn.

    Usage::

        runner = Runner(app_name="demo", agent=root, session_service=service)
        for event in runner.run(user_id="u1", session_id="s1", new_message=Content.user("hi")):
            print(event.author, event.content)
    """

    def __init__(
        self,
        *,
        app_name: str,
        agent: BaseAgent,
        session_service: BaseSessionService,
        artifact_service: BaseArtifactService | None = None,
        memory_service: BaseMemoryService | None = None,
        model_registry: ModelRegistry | None = None,
        compaction_config: CompactionConfig | None = None,
    ) -> None:
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service
        self.artifact_service = artifact_service
        self.memory_service = memory_service
        self.model_registry = model_registry
        self.compaction_config = compaction_config

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def run(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Content | None,
        run_config: RunConfig | None = None,
        state_delta: dict[str, Any] | None = None,
    ) -> Iterator[Event]:
        """Run one turn and stream its events.

        Args:
            user_id: Owner of the session.
            session_id: Session to continue.
            new_message: The user's message. May carry function responses
                answering earlier long-running or credential calls.
            run_config: Limits and modes for this turn.
            state_delta: State changes recorded on the user's event.

        Yields:
            Every event of the turn. Non-partial events are already
            committed to the session when yielded.

        Raises:
            SessionNotFoundError: If the session does not exist.
            LlmCallsLimitExceededError: If the turn makes too many model
                calls. Events yielded before the error stay committed.
        """
        session = self._get_session(user_id, session_id)
        ctx = self._new_invocation_context(session, new_message, run_config or RunConfig())
        logger.debug("Invocation %s started in session %s", ctx.invocation_id, session.id)

        timeout = ctx.run_config.long_running_timeout
        if timeout is not None:
            expired = self._expire_long_running_calls(ctx, new_message, timeout)
            if expired is not None:
                yield expired

        if new_message is not None:
            self._append_new_message(ctx, new_message, state_delta)

        agent = self._find_agent_to_run(session)
        ctx = ctx.for_agent(agent)
        for event in agent.run(ctx):
            if not event.partial:
                self.session_service.append_event(session, event)
            yield event

        if self.compaction_config is not None:
            run_compaction(session, self.session_service, self.compaction_config)

    def _get_session(self, user_id: str, session_id: str) -> Session:
        session = self.session_service.get_session(
            app_name=self.app_name, user_id=user_id, session_id=session_id
        )
        if session is None:
            raise SessionNotFoundError(self.app_name, user_id, session_id)
        return session

    def _new_invocation_context(
        self, session: Session, new_message: Content | None, run_config: RunConfig
    ) -> InvocationContext:
        return InvocationContext(
            session_service=self.session_service,
            invocation_id=new_invocation_id(),
            agent=self.agent,
            session=session,
            user_content=new_message,
            artifact_service=self.artifact_service,
            memory_service=self.memory_service,
            model_registry=self.model_registry,
            run_config=run_config,
        )

    def _append_new_message(
        self,
        ctx: InvocationContext,
        new_message: Content,
        state_delta: dict[str, Any] | None,
    ) -> None:
        if new_message.role is None:
            new_message = new_message.model_copy(update={"role": "user"})
        event = Event(
            invocation_id=ctx.invocation_id,
            author="user",
            content=new_message,
            actions=EventActions(state_delta=dict(state_delta or {})),
        )
        self.session_service.append_event(ctx.session, event)

    # ------------------------------------------------------------------
    # Resumption
    # ------------------------------------------------------------------

    def _find_agent_to_run(self, session: Session) -> BaseAgent:
        """Pick the agent that continues the conversation.

        A function response answers a call; its author resumes. Otherwise the
        most recent agent that can still be reached through transfers
        continues, falling back to the root.
        """
        events = filter_rewound_events(session.events)
        root = self.agent

        call_event = find_matching_function_call(events)
        if call_event is not None:
            agent = root.find_agent(call_event.author)
            if agent is not None:
                return agent
            logger.warning("Function call author %s not found in tree", call_event.author)

        for event in reversed(events):
            if event.author == "user":
                continue
            if event.author == root.name:
                return root
            agent = root.find_sub_agent(event.author)
            if agent is None:
                logger.warning(
                    "Event %s authored by %s, which is not in the agent tree",
                    event.id,
                    event.author,
                )
                continue
            if _is_transferable_across_tree(agent):
                return agent
        return root

    def _expire_long_running_calls(
        self,
        ctx: InvocationContext,
        new_message: Content | None,
        timeout: float,
    ) -> Event | None:
        """Answer long-running calls pending for longer than ``timeout``."""
        events = filter_rewound_events(ctx.session.events)
        answered = {r.id for e in events for r in e.get_function_responses() if r.id}
        if new_message is not None:
            answered.update(
                p.function_response.id for p in new_message.parts if p.function_response
            )

        now = time.time()
        expired: list[tuple[Event, FunctionCall]] = []
        for event in events:
            if not event.long_running_tool_ids or now - event.timestamp <= timeout:
                continue
            for call in event.get_function_calls():
                if call.name == REQUEST_CREDENTIAL:
                    continue
                if call.id in event.long_running_tool_ids and call.id not in answered:
                    expired.append((event, call))
        if not expired:
            return None

        logger.warning("Timing out %d long-running call(s)", len(expired))
        origin = expired[0][0]
        event = Event(
            invocation_id=ctx.invocation_id,
            author=origin.author,
            branch=origin.branch,
            content=Content(
                role="user",
                parts=[
                    Part.from_function_response(
                        name=call.name,
                        response={"error": TIMED_OUT, "tool": call.name},
                        id=call.id,
                    )
                    for _, call in expired
                ],
            ),
        )
        return self.session_service.append_event(ctx.session, event)

    # ------------------------------------------------------------------
    # Rewind
    # ------------------------------------------------------------------

    def rewind(self, *, user_id: str, session_id: str, rewind_before_invocation_id: str) -> Event:
        """Roll the session back to just before an invocation.

        Raises:
            SessionNotFoundError: If the session does not exist.
            InvocationNotFoundError: If the invocation is not in the visible log.
        """
        session = self._get_session(user_id, session_id)
        return rewind_session(
            self.session_service,
            session,
            rewind_before_invocation_id,
            artifact_service=self.artifact_service,
        )

    def close(self) -> None:
        self.session_service.close()


class InMemoryRunner(Runner):
    """A Runner with in-memory session, artifact and memory services."""

    def __init__(
        self,
        agent: BaseAgent,
        *,
        app_name: str = "InMemoryRunner",
        model_registry: ModelRegistry | None = None,
        compaction_config: CompactionConfig | None = None,
    ) -> None:
        super().__init__(
            app_name=app_name,
            agent=agent,
            session_service=InMemorySessionService(),
            artifact_service=InMemoryArtifactService(),
            memory_service=InMemoryMemoryService(),
            model_registry=model_registry,
            compaction_config=compaction_config,
        )


def _is_transferable_across_tree(agent: BaseAgent) -> bool:
    """True if ``agent`` and every ancestor are LLM agents that allow transfer to their parent."""
    current: Optional[BaseAgent] = agent
    while current is not None:
        if current.kind is not AgentKind.LLM:
            return False
        if getattr(current, "disallow_transfer_to_parent", False):
            return False
        current = current.parent_agent
    return True


def _is_session_key(key: str) -> bool:
    return not key.startswith((APP_PREFIX, USER_PREFIX, TEMP_PREFIX))


def rewind_session(
    session_service: BaseSessionService,
    session: Session,
    rewind_before_invocation_id: str,
    *,
    artifact_service: BaseArtifactService | None = None,
) -> Event:
    """Append a rewind marker restoring state as it was before an invocation.

    The marker's state delta sets every session key changed at or after the
    target back to its value before it, starting from the state the
    session was created with, or deletes it if it had none. Shared
    ``app:`` and ``user:`` keys are left alone. Artifacts changed since
    then are restored by re-saving the earlier version; artifacts first
    created since then are deleted. The handle is checked for staleness
    before any artifact is touched.

    Returns:
        The appended rewind event.

    Raises:
        InvocationNotFoundError: If no visible event has the invocation id.
        StaleSessionError: If ``session`` is out of date.
    """
    events = filter_rewound_events(session.events)
    index = next(
        (i for i, e in enumerate(events) if e.invocation_id == rewind_before_invocation_id),
        None,
    )
    if index is None:
        raise InvocationNotFoundError(rewind_before_invocation_id, session.id)

    before, after = events[:index], events[index:]

    state_before: dict[str, Any] = dict(session.initial_state)
    artifacts_before: dict[str, int] = {}
    for event in before:
        state_before.update(
            (k, v) for k, v in event.actions.state_delta.items() if _is_session_key(k)
        )
        artifacts_before.update(event.actions.artifact_delta)

    state_delta: dict[str, Any] = {}
    changed_artifacts: set[str] = set()
    for event in after:
        for key in event.actions.state_delta:
            if _is_session_key(key):
                state_delta[key] = state_before.get(key)
        changed_artifacts.update(event.actions.artifact_delta)

    artifact_delta: dict[str, int] = {}
    if artifact_service is not None and changed_artifacts:
        session_service.ensure_fresh(session)
        scope = {"app_name": session.app_name, "user_id": session.user_id, "session_id": session.id}
        for filename in sorted(changed_artifacts):
            version = artifacts_before.get(filename)
            if version is None:
                artifact_service.delete_artifact(filename=filename, **scope)
                continue
            artifact = artifact_service.load_artifact(filename=filename, version=version, **scope)
            if artifact is None:
                logger.warning("Artifact %s v%d is gone; cannot restore it", filename, version)
                continue
            artifact_delta[filename] = artifact_service.save_artifact(
                filename=filename, artifact=artifact, **scope
            )

    logger.debug(
        "Rewinding session %s before %s (%d state keys, %d artifacts)",
        session.id,
        rewind_before_invocation_id,
        len(state_delta),
        len(artifact_delta),
    )
    event = Event(
        invocation_id=new_invocation_id(),
        author="user",
        actions=EventActions(
            state_delta=state_delta,
            artifact_delta=artifact_delta,
            rewind_before_invocation_id=rewind_before_invocation_id,
        ),
    )
    return session_service.append_event(session, event)

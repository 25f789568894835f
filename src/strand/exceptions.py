"""Strand exception hierarchy.

All Strand-specific exceptions inherit from StrandError.
"""


class StrandError(Exception):
    """Base exception for all Strand errors."""


class FatalInvocationError(StrandError):
    """Base for errors that abort the current invocation.

    Tool dispatch never converts these into structured error payloads;
    they propagate to the caller of ``Runner.run``.
    """


class LlmCallsLimitExceededError(FatalInvocationError):
    """Raised when an invocation exceeds its model-call ceiling."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Max number of llm calls limit of `{limit}` exceeded")


class SessionNotFoundError(StrandError):
    """Raised when a session lookup fails."""

    def __init__(self, app_name: str, user_id: str, session_id: str) -> None:
        self.app_name = app_name
        self.user_id = user_id
        self.session_id = session_id
        super().__init__(
            f"Session not found: {session_id} (app={app_name}, user={user_id})"
        )


class SessionExistsError(StrandError):
    """Raised when creating a session whose id is already taken."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session already exists: {session_id}")


class StaleSessionError(StrandError):
    """Raised when appending to a session handle that is out of date.

    Another writer appended to the stored session after this handle was
    loaded. Reload the session with ``get_session`` and retry.
    """

    def __init__(self, session_id: str, handle_time: float, stored_time: float) -> None:
        self.session_id = session_id
        self.handle_time = handle_time
        self.stored_time = stored_time
        super().__init__(
            f"Session {session_id} is stale: handle updated at {handle_time}, "
            f"storage updated at {stored_time}. Reload the session."
        )


class InvalidAgentNameError(StrandError):
    """Raised when an agent name violates naming rules."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid agent name '{name}': {reason}")


class AgentAttachError(StrandError):
    """Raised when an agent is attached as a child more than once."""

    def __init__(self, agent_name: str, current_parent: str, new_parent: str) -> None:
        self.agent_name = agent_name
        self.current_parent = current_parent
        self.new_parent = new_parent
        super().__init__(
            f"Agent '{agent_name}' already has parent '{current_parent}'; "
            f"cannot attach it to '{new_parent}'"
        )


class AgentNotFoundError(StrandError):
    """Raised when an agent name cannot be resolved in the agent tree."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Agent not found in tree: {name}")


class GraphDefinitionError(StrandError):
    """Raised when a graph agent's node set is inconsistent."""


class InvalidToolError(StrandError):
    """Raised when a tool definition violates naming or description rules."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid tool '{name}': {reason}")


class ToolNotFoundError(StrandError):
    """Raised when the model calls a tool the agent does not expose."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(
            f"Function {name} is not found in the tools dict. "
            f"Available: {', '.join(available) or '(none)'}"
        )


class ModelNotFoundError(StrandError):
    """Raised when no registered provider matches a model name."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"No model provider registered for: {model}")


class FlowError(StrandError):
    """Raised when the step loop reaches an inconsistent state."""


class InvocationNotFoundError(StrandError):
    """Raised when a rewind target invocation id is absent from the session."""

    def __init__(self, invocation_id: str, session_id: str) -> None:
        self.invocation_id = invocation_id
        self.session_id = session_id
        super().__init__(
            f"Invocation {invocation_id} not found in session {session_id}"
        )


class CompactionError(StrandError):
    """Raised when history compaction fails. The session is left unchanged."""

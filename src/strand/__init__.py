"""Strand: a runtime for cooperating LLM agents over durable sessions.

Agents alternate model calls and tool calls. Every step is recorded as an
event in an append-only session log, which is also the only way session
state changes.
"""

from strand._version import __version__

# Agents
from strand.agents.base import AgentKind, BaseAgent
from strand.agents.callback_context import CallbackContext, ReadonlyContext
from strand.agents.graph import GraphAgent, GraphNode
from strand.agents.invocation_context import InvocationContext
from strand.agents.llm_agent import Agent, LlmAgent
from strand.agents.loop import LoopAgent
from strand.agents.parallel import ParallelAgent
from strand.agents.sequential import SequentialAgent

# Runner
from strand.runner import InMemoryRunner, Runner, rewind_session

# Events and sessions
from strand.events import (
    CompactionConfig,
    Event,
    EventActions,
    EventCompaction,
    LlmEventSummarizer,
)
from strand.sessions import (
    BaseSessionService,
    DatabaseSessionService,
    GetSessionConfig,
    InMemorySessionService,
    Session,
    State,
)

# Collaborators
from strand.artifacts import BaseArtifactService, InMemoryArtifactService
from strand.memory import BaseMemoryService, InMemoryMemoryService

# Models and configuration
from strand.models import (
    AuthConfig,
    Content,
    FunctionCall,
    FunctionResponse,
    GenerationConfig,
    Part,
    RunConfig,
    StreamingMode,
)
from strand.llm import BaseLlm, LlmRequest, LlmResponse, ModelRegistry, OpenAILlm

# Tools
from strand.tools import (
    AgentTool,
    BaseTool,
    BaseToolset,
    FunctionTool,
    ToolContext,
    exit_loop,
    load_memory,
)

# Exceptions
from strand.exceptions import (
    AgentNotFoundError,
    CompactionError,
    FatalInvocationError,
    InvocationNotFoundError,
    LlmCallsLimitExceededError,
    SessionNotFoundError,
    StaleSessionError,
    StrandError,
)

__all__ = [
    "__version__",
    # Agents
    "Agent",
    "AgentKind",
    "BaseAgent",
    "CallbackContext",
    "GraphAgent",
    "GraphNode",
    "InvocationContext",
    "LlmAgent",
    "LoopAgent",
    "ParallelAgent",
    "ReadonlyContext",
    "SequentialAgent",
    # Runner
    "InMemoryRunner",
    "Runner",
    "rewind_session",
    # Events and sessions
    "BaseSessionService",
    "CompactionConfig",
    "DatabaseSessionService",
    "Event",
    "EventActions",
    "EventCompaction",
    "GetSessionConfig",
    "InMemorySessionService",
    "LlmEventSummarizer",
    "Session",
    "State",
    # Collaborators
    "BaseArtifactService",
    "BaseMemoryService",
    "InMemoryArtifactService",
    "InMemoryMemoryService",
    # Models and configuration
    "AuthConfig",
    "BaseLlm",
    "Content",
    "FunctionCall",
    "FunctionResponse",
    "GenerationConfig",
    "LlmRequest",
    "LlmResponse",
    "ModelRegistry",
    "OpenAILlm",
    "Part",
    "RunConfig",
    "StreamingMode",
    # Tools
    "AgentTool",
    "BaseTool",
    "BaseToolset",
    "FunctionTool",
    "ToolContext",
    "exit_loop",
    "load_memory",
    # Exceptions
    "AgentNotFoundError",
    "CompactionError",
    "FatalInvocationError",
    "InvocationNotFoundError",
    "LlmCallsLimitExceededError",
    "SessionNotFoundError",
    "StaleSessionError",
    "StrandError",
]

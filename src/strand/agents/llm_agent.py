"""The model-driven leaf agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterator, Literal, Optional, Sequence, Union

from strand.agents.base import AgentKind, BaseAgent
from strand.exceptions import ModelNotFoundError
from strand.flows.auto import AutoFlow
from strand.flows.single import SingleFlow
from strand.llm.protocols import BaseLlm
from strand.tools.base import BaseTool, BaseToolset
from strand.tools.function_tool import FunctionTool

if TYPE_CHECKING:
    from pydantic import BaseModel

    from strand.agents.callback_context import CallbackContext, ReadonlyContext
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event
    from strand.flows.base import BaseLlmFlow
    from strand.llm.models import LlmRequest, LlmResponse
    from strand.models.config import GenerationConfig
    from strand.tools.context import ToolContext

logger = logging.getLogger(__name__)

InstructionProvider = Callable[["ReadonlyContext"], str]
ToolUnion = Union[BaseTool, BaseToolset, Callable[..., Any]]

BeforeModelCallback = Callable[["CallbackContext", "LlmRequest"], Optional["LlmResponse"]]
AfterModelCallback = Callable[["CallbackContext", "LlmResponse"], Optional["LlmResponse"]]
BeforeToolCallback = Callable[[BaseTool, dict, "ToolContext"], Optional[dict]]
AfterToolCallback = Callable[[BaseTool, dict, "ToolContext", Optional[dict]], Optional[dict]]


class LlmAgent(BaseAgent):
    """An agent that alternates model calls and tool calls.

    Args:
        model: A ``BaseLlm`` or a model name resolved through the
            invocation's ``ModelRegistry``. When unset, the nearest LLM
            ancestor's model is used.
        instruction: Instruction template, or a callable returning the
            instruction (callables skip state injection).
        global_instruction: Instruction applied to every agent in the tree;
            only read from the root agent.
        generate_config: Sampling parameters.
        tools: Tools, toolsets, or plain functions (wrapped as FunctionTool).
        include_contents: ``"default"`` sends history; ``"none"`` sends the
            current turn only.
        output_key: Store the agent's final text in this state key.
        output_schema: Pydantic model the final reply must validate against.
            The schema is described to the model, and a valid reply is
            rewritten to the model's canonical JSON.
        disallow_transfer_to_parent: Never offer the parent as a target.
        disallow_transfer_to_peers: Never offer siblings as targets.
        before_model_callbacks: First non-None LlmResponse skips the model.
        after_model_callbacks: First non-None LlmResponse replaces the reply.
        before_tool_callbacks: First non-None dict skips the tool.
        after_tool_callbacks: First non-None dict replaces the tool result.

    Usage::

        agent = LlmAgent(
            name="calculator",
            model="gpt-4o-mini",
            instruction="Add numbers for {user_name?}.",
            tools=[add],
        )
    """

    kind: ClassVar[AgentKind] = AgentKind.LLM

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        model: Union[str, BaseLlm, None] = None,
        instruction: Union[str, InstructionProvider] = "",
        global_instruction: Union[str, InstructionProvider] = "",
        generate_config: GenerationConfig | None = None,
        tools: Sequence[ToolUnion] | None = None,
        include_contents: Literal["default", "none"] = "default",
        output_key: str | None = None,
        output_schema: type[BaseModel] | None = None,
        disallow_transfer_to_parent: bool = False,
        disallow_transfer_to_peers: bool = False,
        before_model_callbacks: Sequence[BeforeModelCallback] | None = None,
        after_model_callbacks: Sequence[AfterModelCallback] | None = None,
        before_tool_callbacks: Sequence[BeforeToolCallback] | None = None,
        after_tool_callbacks: Sequence[AfterToolCallback] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name=name, description=description, **kwargs)
        self.model = model
        self.instruction = instruction
        self.global_instruction = global_instruction
        self.generate_config = generate_config
        self.tools = list(tools or [])
        self.include_contents = include_contents
        self.output_key = output_key
        self.output_schema = output_schema
        self.disallow_transfer_to_parent = disallow_transfer_to_parent
        self.disallow_transfer_to_peers = disallow_transfer_to_peers
        self.before_model_callbacks = list(before_model_callbacks or [])
        self.after_model_callbacks = list(after_model_callbacks or [])
        self.before_tool_callbacks = list(before_tool_callbacks or [])
        self.after_tool_callbacks = list(after_tool_callbacks or [])
        self._function_tools: dict[int, FunctionTool] = {}

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def canonical_model(self, ctx: InvocationContext) -> BaseLlm:
        """The model this agent calls.

        Raises:
            ModelNotFoundError: If no model is set on this agent or an LLM
                ancestor, or a model name cannot be resolved.
        """
        agent: BaseAgent | None = self
        while agent is not None:
            model = getattr(agent, "model", None) if agent.kind is AgentKind.LLM else None
            if isinstance(model, str) and model:
                if ctx.model_registry is None:
                    raise ModelNotFoundError(model)
                return ctx.model_registry.resolve(model)
            if model is not None and isinstance(model, BaseLlm):
                return model
            agent = agent.parent_agent
        raise ModelNotFoundError(f"<no model configured for agent {self.name}>")

    def canonical_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        """Instruction text and whether state injection should be skipped."""
        if callable(self.instruction):
            return self.instruction(ctx), True
        return self.instruction, False

    def canonical_global_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        if callable(self.global_instruction):
            return self.global_instruction(ctx), True
        return self.global_instruction, False

    def canonical_tools(self, ctx: ReadonlyContext | None = None) -> list[BaseTool]:
        """Flatten tools, toolsets and plain functions into tool objects."""
        resolved: list[BaseTool] = []
        for tool in self.tools:
            if isinstance(tool, BaseTool):
                resolved.append(tool)
            elif isinstance(tool, BaseToolset):
                resolved.extend(tool.get_tools(ctx))
            elif callable(tool):
                wrapped = self._function_tools.get(id(tool))
                if wrapped is None:
                    wrapped = FunctionTool(tool)
                    self._function_tools[id(tool)] = wrapped
                resolved.append(wrapped)
            else:
                raise TypeError(f"Unsupported tool type: {type(tool).__name__}")
        return resolved

    @property
    def is_tree_transferable(self) -> bool:
        """Whether this agent may take part in transfers across the tree."""
        return not (
            self.disallow_transfer_to_parent
            and self.disallow_transfer_to_peers
            and not self.sub_agents
        )

    def _llm_flow(self) -> BaseLlmFlow:
        return AutoFlow() if self.is_tree_transferable else SingleFlow()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        for event in self._llm_flow().run(ctx):
            self._maybe_save_output_to_state(event)
            yield event

    def _maybe_save_output_to_state(self, event: Event) -> None:
        if not self.output_key or event.author != self.name:
            return
        if not event.is_final_response() or event.content is None or event.error_code:
            return
        text = event.content.text
        if text:
            event.actions.state_delta[self.output_key] = text


Agent = LlmAgent

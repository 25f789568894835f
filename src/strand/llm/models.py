"""Provider-agnostic model request and response types.

The runtime depends on nothing beyond these shapes: contents in, text or
function calls out, plus optional usage and error metadata.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from strand.models.config import GenerationConfig
from strand.models.content import Content

if TYPE_CHECKING:
    from strand.tools.base import BaseTool


class FunctionDeclaration(BaseModel):
    """Tool declaration sent to the model."""

    name: str
    description: str
    parameters: Optional[dict[str, Any]] = None

    def to_openai(self) -> dict:
        """Convert to OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


class LlmRequest(BaseModel):
    """Everything a model needs for one generation call.

    ``tools_dict`` is runtime-only: it maps declared tool names to the tool
    objects the dispatcher will execute, and is never serialized.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: Optional[str] = None
    contents: list[Content] = Field(default_factory=list)
    system_instruction: Optional[str] = None
    declarations: list[FunctionDeclaration] = Field(default_factory=list)
    config: GenerationConfig = Field(default_factory=GenerationConfig)
    tools_dict: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def append_instructions(self, instructions: list[str]) -> None:
        """Append instruction blocks, separated by blank lines."""
        text = "\n\n".join(i for i in instructions if i)
        if not text:
            return
        if self.system_instruction:
            self.system_instruction = f"{self.system_instruction}\n\n{text}"
        else:
            self.system_instruction = text

    def append_tools(self, tools: list[BaseTool]) -> None:
        """Register tools for dispatch and declare them to the model."""
        for tool in tools:
            declaration = tool.get_declaration()
            self.tools_dict[tool.name] = tool
            if declaration is not None:
                self.declarations.append(declaration)


class UsageMetadata(BaseModel):
    """Token accounting reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LlmResponse(BaseModel):
    """One unit of model output.

    A streamed generation yields zero or more ``partial`` responses followed
    by one final response.
    """

    content: Optional[Content] = None
    partial: Optional[bool] = None
    turn_complete: Optional[bool] = None
    interrupted: Optional[bool] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    usage: Optional[UsageMetadata] = None
    custom_metadata: Optional[dict[str, Any]] = None

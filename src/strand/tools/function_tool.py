"""Wrap a plain Python callable as a tool."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

from strand.llm.models import FunctionDeclaration
from strand.tools.base import BaseTool
from strand.tools.schema import CONTEXT_PARAM, json_schema_for, model_from_signature

if TYPE_CHECKING:
    from strand.tools.context import ToolContext


def _first_paragraph(doc: str | None) -> str:
    if not doc:
        return ""
    return doc.strip().split("\n\n", 1)[0].replace("\n", " ").strip()


class FunctionTool(BaseTool):
    """A tool backed by a Python function.

    The parameter schema is derived from the function signature. A
    parameter named ``tool_context`` receives the ``ToolContext`` and is not
    declared to the model. The description defaults to the first paragraph
    of the docstring.

    Usage::

        def add(a: int, b: int) -> int:
            \"\"\"Add two integers.\"\"\"
            return a + b

        tool = FunctionTool(add)
    """

    def __init__(
        self,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        **kwargs: Any,
    ) -> None:
        name = name or func.__name__
        super().__init__(
            name=name,
            description=description or _first_paragraph(inspect.getdoc(func)),
            **kwargs,
        )
        self.func = func
        self._args_model = model_from_signature(func, name)
        self._wants_context = CONTEXT_PARAM in inspect.signature(func).parameters

    def args_model(self) -> type[BaseModel]:
        return self._args_model

    def get_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=json_schema_for(self._args_model),
        )

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        # Keep validated objects (not dumped dicts) so annotated model
        # parameters arrive as model instances.
        validated = self._args_model.model_validate(args)
        return {field: getattr(validated, field) for field in validated.model_fields_set}

    def run(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        if self._wants_context:
            return self.func(**args, tool_context=tool_context)
        return self.func(**args)

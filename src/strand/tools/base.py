"""Tool contract and the shared execute path.

Every tool the model can call is a ``BaseTool``. ``execute()`` is the single
entry point used by the dispatcher: it validates arguments, runs the tool
under its retry policy, and turns failures into structured payloads so the
conversation can continue. Only ``FatalInvocationError`` escapes.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import tenacity
from pydantic import BaseModel, ValidationError

from strand.exceptions import FatalInvocationError, InvalidToolError
from strand.llm.models import FunctionDeclaration
from strand.tools.schema import model_from_json_schema

if TYPE_CHECKING:
    from strand.agents.callback_context import ReadonlyContext
    from strand.llm.models import LlmRequest
    from strand.tools.context import ToolContext

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")

INVALID_ARGUMENTS = "Invalid arguments"
EXECUTION_FAILED = "Execution failed"


def error_payload(tool_name: str, error: str, message: str) -> dict[str, Any]:
    """Structured error returned to the model instead of raising."""
    return {"error": error, "message": message, "tool": tool_name}


class BaseTool(ABC):
    """A callable capability exposed to the model.

    Args:
        name: Identifier-safe name (letters, digits, underscore).
        description: What the tool does; at least 3 characters.
        is_long_running: The result may arrive in a later invocation.
        should_retry_on_failure: Retry ``run`` when it raises.
        max_retry_attempts: Total attempts when retrying is enabled.
        base_retry_delay: Initial backoff in seconds.
        max_retry_delay: Backoff cap in seconds.
        retry_jitter: Upper bound of random seconds added to each wait.

    Raises:
        InvalidToolError: If the name or description is invalid.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        is_long_running: bool = False,
        should_retry_on_failure: bool = False,
        max_retry_attempts: int = 3,
        base_retry_delay: float = 1.0,
        max_retry_delay: float = 10.0,
        retry_jitter: float = 1.0,
    ) -> None:
        if not name or not _NAME_RE.match(name):
            raise InvalidToolError(
                name, "name must contain only letters, digits and underscores"
            )
        if not description or len(description.strip()) < 3:
            raise InvalidToolError(name, "description must be at least 3 characters")
        if max_retry_attempts < 1:
            raise InvalidToolError(name, "max_retry_attempts must be >= 1")

        self.name = name
        self.description = description
        self.is_long_running = is_long_running
        self.should_retry_on_failure = should_retry_on_failure
        self.max_retry_attempts = max_retry_attempts
        self.base_retry_delay = base_retry_delay
        self.max_retry_delay = max_retry_delay
        self.retry_jitter = retry_jitter
        self._args_model: type[BaseModel] | None = None

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    def get_declaration(self) -> FunctionDeclaration | None:
        """Declaration sent to the model. None hides the tool from the model."""
        return None

    def process_llm_request(self, tool_context: ToolContext, llm_request: LlmRequest) -> None:
        """Register this tool on an outgoing request."""
        llm_request.append_tools([self])

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @abstractmethod
    def run(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        """Execute the tool with validated arguments."""
        ...

    def args_model(self) -> type[BaseModel] | None:
        """Pydantic model used to validate arguments, built from the declaration."""
        if self._args_model is None:
            declaration = self.get_declaration()
            if declaration is None or declaration.parameters is None:
                return None
            self._args_model = model_from_json_schema(self.name, declaration.parameters)
        return self._args_model

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """Validate and coerce ``args``.

        Raises:
            pydantic.ValidationError: If the arguments do not match.
        """
        model = self.args_model()
        if model is None:
            return dict(args)
        return model.model_validate(args).model_dump(exclude_unset=True)

    def _retryer(self) -> tenacity.Retrying:
        attempts = self.max_retry_attempts if self.should_retry_on_failure else 1
        return tenacity.Retrying(
            retry=tenacity.retry_if_not_exception_type(FatalInvocationError),
            wait=(
                tenacity.wait_exponential(multiplier=self.base_retry_delay, max=self.max_retry_delay)
                + tenacity.wait_random(0, self.retry_jitter)
            ),
            stop=tenacity.stop_after_attempt(attempts),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def execute(self, args: dict[str, Any], tool_context: ToolContext) -> dict[str, Any] | None:
        """Validate, run with retry, and shape the result.

        Returns:
            The response payload. Non-dict results are wrapped as
            ``{"result": value}``. None only for a long-running tool that
            has not produced a result yet.

        Raises:
            FatalInvocationError: Propagated untouched.
        """
        try:
            validated = self.validate_args(args)
        except ValidationError as exc:
            logger.debug("Invalid arguments for %s: %s", self.name, exc)
            return error_payload(self.name, INVALID_ARGUMENTS, str(exc))

        try:
            result = self._retryer()(self.run, validated, tool_context)
        except FatalInvocationError:
            raise
        except Exception as exc:
            logger.debug("Tool %s failed: %s", self.name, exc, exc_info=True)
            return error_payload(self.name, EXECUTION_FAILED, f"{type(exc).__name__}: {exc}")

        if result is None and self.is_long_running:
            return None
        if isinstance(result, dict):
            return result
        return {"result": result}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class BaseToolset(ABC):
    """A provider of tools resolved per invocation (e.g. a remote server)."""

    @abstractmethod
    def get_tools(self, context: ReadonlyContext | None = None) -> list[BaseTool]:
        """Return the tools currently offered."""
        ...

    def close(self) -> None:
        """Release any held resources."""

"""Content model shared by model requests, responses and events.

A ``Content`` is a role plus an ordered list of ``Part`` objects. Each part
carries exactly one payload: text, a function call, a function response or
inline binary data (used for artifacts).
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FunctionCall(BaseModel):
    """A tool invocation requested by the model.

    Attributes:
        id: Call identifier. Client-generated ids are prefixed ``strand-``
            and stripped before contents are sent back to a model.
        name: Name of the tool to call.
        args: Parsed argument mapping.
    """

    id: Optional[str] = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    """The result of a tool invocation, matched to its call by ``id``."""

    id: Optional[str] = None
    name: str
    response: dict[str, Any] = Field(default_factory=dict)


class Blob(BaseModel):
    """Inline binary payload. Serialized to JSON as base64."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    mime_type: str = "application/octet-stream"
    data: bytes = b""


class Part(BaseModel):
    """One piece of a Content. Exactly one payload field is set."""

    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None
    inline_data: Optional[Blob] = None
    thought: bool = False

    @model_validator(mode="after")
    def _single_payload(self) -> Part:
        payloads = [
            self.text is not None,
            self.function_call is not None,
            self.function_response is not None,
            self.inline_data is not None,
        ]
        if sum(payloads) > 1:
            raise ValueError("A Part carries at most one payload")
        return self

    @classmethod
    def from_text(cls, text: str) -> Part:
        return cls(text=text)

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any], id: str | None = None) -> Part:
        return cls(function_call=FunctionCall(id=id, name=name, args=args))

    @classmethod
    def from_function_response(
        cls, name: str, response: dict[str, Any], id: str | None = None
    ) -> Part:
        return cls(function_response=FunctionResponse(id=id, name=name, response=response))

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "application/octet-stream") -> Part:
        return cls(inline_data=Blob(mime_type=mime_type, data=data))


class Content(BaseModel):
    """A role-tagged list of parts."""

    role: Optional[Literal["user", "model"]] = None
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> Content:
        """Build a single-part user message."""
        return cls(role="user", parts=[Part(text=text)])

    @classmethod
    def model(cls, text: str) -> Content:
        """Build a single-part model message."""
        return cls(role="model", parts=[Part(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all non-thought text parts."""
        return "".join(p.text for p in self.parts if p.text and not p.thought)

"""Argument models for tools.

Tool arguments are validated with pydantic. A model is built either from a
declared JSON schema (``model_from_json_schema``) or from a Python
callable's signature (``model_from_signature``); the latter also yields the
JSON schema that is declared to the model.
"""

from __future__ import annotations

import inspect
import typing
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, create_model

# Injected by the dispatcher, never declared to the model.
CONTEXT_PARAM = "tool_context"

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "object": dict,
    "null": type(None),
}

_ARGS_CONFIG = ConfigDict(extra="forbid")


def _python_type(schema: dict[str, Any]) -> Any:
    if "enum" in schema and schema["enum"]:
        return Literal[tuple(schema["enum"])]
    json_type = schema.get("type")
    if isinstance(json_type, list):
        non_null = [t for t in json_type if t != "null"]
        inner = _python_type({**schema, "type": non_null[0]}) if non_null else Any
        return Optional[inner] if "null" in json_type else inner
    if json_type == "array":
        items = schema.get("items")
        return list[_python_type(items)] if isinstance(items, dict) else list
    return _JSON_TYPES.get(json_type, Any)


def model_from_json_schema(name: str, schema: dict[str, Any] | None) -> type[BaseModel]:
    """Build an argument model from an object JSON schema.

    Required properties are mandatory; the rest default to their schema
    default, or None. Unknown arguments are rejected.
    """
    schema = schema or {}
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    fields: dict[str, Any] = {}
    for prop, prop_schema in properties.items():
        py_type = _python_type(prop_schema)
        if prop in required:
            fields[prop] = (py_type, ...)
        else:
            fields[prop] = (Optional[py_type], prop_schema.get("default"))
    return create_model(f"{name}_args", __config__=_ARGS_CONFIG, **fields)


def model_from_signature(func: Callable[..., Any], name: str) -> type[BaseModel]:
    """Build an argument model from a callable's parameters.

    ``tool_context``, ``*args`` and ``**kwargs`` are skipped. Unannotated
    parameters accept any value.
    """
    try:
        hints = typing.get_type_hints(func)
    except NameError:
        # Unresolvable names (typically a TYPE_CHECKING-only ToolContext);
        # pydantic resolves the remaining string annotations itself.
        hints = {}

    fields: dict[str, Any] = {}
    for param in inspect.signature(func).parameters.values():
        if param.name == CONTEXT_PARAM:
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(param.name, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = Any
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param.name] = (annotation, default)
    return create_model(
        f"{name}_args",
        __config__=_ARGS_CONFIG,
        __module__=getattr(func, "__module__", __name__),
        **fields,
    )


def json_schema_for(model: type[BaseModel]) -> dict[str, Any] | None:
    """Declared parameter schema for an argument model, or None if it has no fields."""
    if not model.model_fields:
        return None
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.pop("additionalProperties", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema

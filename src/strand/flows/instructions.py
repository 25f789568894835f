"""Fill ``{placeholders}`` in instruction templates from session state.

``{key}`` is replaced with ``state[key]`` and raises if the key is absent;
``{key?}`` is replaced with an empty string instead. ``{artifact.name}``
inlines the text of a saved artifact. Braces that do not hold a valid
state name are left untouched.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from strand.sessions.state import APP_PREFIX, TEMP_PREFIX, USER_PREFIX

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext

_PLACEHOLDER_RE = re.compile(r"{+[^{}]*}+")
_ARTIFACT_PREFIX = "artifact."


def _is_valid_state_name(name: str) -> bool:
    parts = name.split(":")
    if len(parts) == 1:
        return name.isidentifier()
    if len(parts) == 2 and parts[0] + ":" in (APP_PREFIX, USER_PREFIX, TEMP_PREFIX):
        return parts[1].isidentifier()
    return False


def inject_session_state(template: str, ctx: InvocationContext) -> str:
    """Return ``template`` with state and artifact placeholders filled.

    Raises:
        KeyError: If a required state key or artifact is missing.
    """

    def replace(match: re.Match[str]) -> str:
        raw = match.group()
        name = raw.lstrip("{").rstrip("}").strip()
        optional = name.endswith("?")
        if optional:
            name = name[:-1]

        if name.startswith(_ARTIFACT_PREFIX):
            filename = name[len(_ARTIFACT_PREFIX):]
            if ctx.artifact_service is None:
                raise ValueError("Artifact service is not initialized.")
            artifact = ctx.artifact_service.load_artifact(
                app_name=ctx.app_name,
                user_id=ctx.user_id,
                session_id=ctx.session.id,
                filename=filename,
            )
            if artifact is None:
                if optional:
                    return ""
                raise KeyError(f"Artifact {filename} not found.")
            return artifact.text or ""

        if not _is_valid_state_name(name):
            return raw
        if name in ctx.session.state:
            return str(ctx.session.state[name])
        if optional:
            return ""
        raise KeyError(f"Context variable not found: `{name}`.")

    return _PLACEHOLDER_RE.sub(replace, template)

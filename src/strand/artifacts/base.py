"""Abstract artifact service contract.

Artifacts are versioned binary or text parts attached to a session.
Versions start at 0 and increase by one per save. Filenames prefixed
``user:`` are shared by every session of the user.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strand.models.content import Part

USER_NAMESPACE_PREFIX = "user:"


class BaseArtifactService(ABC):
    """Storage contract for artifacts."""

    @abstractmethod
    def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        """Store a new version of ``filename`` and return its version number."""
        ...

    @abstractmethod
    def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:
        """Load a version (latest when ``version`` is None). None if absent."""
        ...

    @abstractmethod
    def list_artifact_keys(self, *, app_name: str, user_id: str, session_id: str) -> list[str]:
        """List filenames visible to the session, sorted."""
        ...

    @abstractmethod
    def delete_artifact(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> None:
        """Delete every version of ``filename``."""
        ...

    @abstractmethod
    def list_versions(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> list[int]:
        """List the stored versions of ``filename``, ascending."""
        ...

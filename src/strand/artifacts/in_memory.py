"""In-memory artifact service."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from strand.artifacts.base import USER_NAMESPACE_PREFIX, BaseArtifactService

if TYPE_CHECKING:
    from strand.models.content import Part


class InMemoryArtifactService(BaseArtifactService):
    """Artifact storage held in process memory.

    Each key maps to a list of parts indexed by version.
    """

    def __init__(self) -> None:
        self._artifacts: dict[str, list[Part]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _path(app_name: str, user_id: str, session_id: str, filename: str) -> str:
        if filename.startswith(USER_NAMESPACE_PREFIX):
            return f"{app_name}/{user_id}/user/{filename}"
        return f"{app_name}/{user_id}/{session_id}/{filename}"

    def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        path = self._path(app_name, user_id, session_id, filename)
        with self._lock:
            versions = self._artifacts.setdefault(path, [])
            versions.append(artifact.model_copy(deep=True))
            return len(versions) - 1

    def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:
        path = self._path(app_name, user_id, session_id, filename)
        with self._lock:
            versions = self._artifacts.get(path)
            if not versions:
                return None
            if version is None:
                return versions[-1].model_copy(deep=True)
            if 0 <= version < len(versions):
                return versions[version].model_copy(deep=True)
            return None

    def list_artifact_keys(self, *, app_name: str, user_id: str, session_id: str) -> list[str]:
        session_prefix = f"{app_name}/{user_id}/{session_id}/"
        user_prefix = f"{app_name}/{user_id}/user/"
        keys: list[str] = []
        with self._lock:
            for path in self._artifacts:
                if path.startswith(session_prefix):
                    keys.append(path[len(session_prefix):])
                elif path.startswith(user_prefix):
                    keys.append(path[len(user_prefix):])
        return sorted(keys)

    def delete_artifact(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> None:
        with self._lock:
            self._artifacts.pop(self._path(app_name, user_id, session_id, filename), None)

    def list_versions(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> list[int]:
        with self._lock:
            versions = self._artifacts.get(self._path(app_name, user_id, session_id, filename), [])
            return list(range(len(versions)))

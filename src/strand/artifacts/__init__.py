"""Versioned artifact storage collaborators."""

from strand.artifacts.base import BaseArtifactService
from strand.artifacts.in_memory import InMemoryArtifactService

__all__ = ["BaseArtifactService", "InMemoryArtifactService"]

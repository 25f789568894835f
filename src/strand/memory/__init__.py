"""Long-term memory collaborators."""

from strand.memory.base import BaseMemoryService, MemoryEntry, SearchMemoryResponse
from strand.memory.in_memory import InMemoryMemoryService

__all__ = ["BaseMemoryService", "InMemoryMemoryService", "MemoryEntry", "SearchMemoryResponse"]

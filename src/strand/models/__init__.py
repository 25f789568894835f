"""Domain models shared across Strand subsystems."""

from strand.models.auth import AuthConfig
from strand.models.config import GenerationConfig, RunConfig, StreamingMode
from strand.models.content import Blob, Content, FunctionCall, FunctionResponse, Part

__all__ = [
    "AuthConfig",
    "Blob",
    "Content",
    "FunctionCall",
    "FunctionResponse",
    "GenerationConfig",
    "Part",
    "RunConfig",
    "StreamingMode",
]

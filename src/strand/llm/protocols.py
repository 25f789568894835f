"""Model provider protocol.

Any object with a ``model`` name and a ``generate()`` method matching this
signature can back an agent. Providers are looked up through an explicit
``ModelRegistry`` rather than ambient global state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from strand.llm.models import LlmRequest, LlmResponse


@runtime_checkable
class BaseLlm(Protocol):
    """Protocol for pluggable model providers.

    ``generate`` yields zero or more partial responses (only when ``stream``
    is True) followed by exactly one final response.
    """

    model: str

    def generate(self, request: LlmRequest, stream: bool = False) -> Iterator[LlmResponse]:
        """Run one generation call."""
        ...

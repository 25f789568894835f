"""Explicit model-provider registry.

A ``ModelRegistry`` is constructed at startup and handed to the Runner,
which passes it to every invocation. Agents that name their model as a
string resolve it here.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Callable

from strand.exceptions import ModelNotFoundError

if TYPE_CHECKING:
    from strand.llm.protocols import BaseLlm

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str], "BaseLlm"]


class ModelRegistry:
    """Maps model-name patterns to provider factories.

    Patterns are regular expressions matched against the full model name.
    When several patterns match, the most recently registered one wins.
    Resolved instances are cached per model name.

    Usage::

        registry = ModelRegistry()
        registry.register(r"gpt-.*", lambda name: OpenAILlm(model=name))
        llm = registry.resolve("gpt-4o-mini")
    """

    def __init__(self) -> None:
        self._entries: list[tuple[re.Pattern[str], ModelFactory]] = []
        self._cache: dict[str, BaseLlm] = {}
        self._lock = threading.Lock()

    def register(self, pattern: str, factory: ModelFactory) -> None:
        """Register a factory for model names matching ``pattern``."""
        with self._lock:
            self._entries.append((re.compile(pattern), factory))
            self._cache.clear()

    def register_instance(self, llm: BaseLlm) -> None:
        """Register an already-built provider under its exact model name."""
        self.register(re.escape(llm.model), lambda _name: llm)

    def resolve(self, model: str) -> BaseLlm:
        """Return the provider for ``model``.

        Raises:
            ModelNotFoundError: If no registered pattern matches.
        """
        with self._lock:
            cached = self._cache.get(model)
            if cached is not None:
                return cached
            for pattern, factory in reversed(self._entries):
                if pattern.fullmatch(model):
                    llm = factory(model)
                    self._cache[model] = llm
                    logger.debug("Resolved model %s via pattern %s", model, pattern.pattern)
                    return llm
        raise ModelNotFoundError(model)

    def __contains__(self, model: object) -> bool:
        if not isinstance(model, str):
            return False
        return any(pattern.fullmatch(model) for pattern, _ in self._entries)

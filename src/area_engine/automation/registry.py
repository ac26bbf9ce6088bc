"""Executor registries keyed by ``service.type`` tags."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

from ..core.exceptions import DuplicateExecutorError, NoExecutorFoundError
from ..core.logger import get_logger
from .reactions import BaseReactionExecutor
from .triggers import BaseActionExecutor

logger = get_logger("automation.registry")

E = TypeVar("E")


class ExecutorRegistry(Generic[E]):
    """Immutable mapping from type tag to executor.

    Built once from the full executor list; two executors claiming the same
    tag is a wiring bug and fails the build.
    """

    def __init__(self, kind: str, executors: Iterable[E], key: Callable[[E], str]) -> None:
        self.kind = kind
        registry: dict[str, E] = {}
        for executor in executors:
            tag = key(executor).lower()
            if tag in registry:
                raise DuplicateExecutorError(kind, tag)
            registry[tag] = executor
        self._executors = registry
        logger.info("Registered %d %s executors: %s", len(registry), kind, ", ".join(registry))

    def get_executor(self, executor_type: str) -> E:
        executor = self._executors.get((executor_type or "").lower())
        if executor is None:
            raise NoExecutorFoundError(self.kind, executor_type)
        return executor

    def has_executor(self, executor_type: str) -> bool:
        return (executor_type or "").lower() in self._executors

    def types(self) -> list[str]:
        return sorted(self._executors)

    def __len__(self) -> int:
        return len(self._executors)


class ActionExecutorRegistry(ExecutorRegistry[BaseActionExecutor]):
    def __init__(self, executors: Iterable[BaseActionExecutor]) -> None:
        super().__init__("action", executors, key=lambda executor: executor.action_type)


class ReactionExecutorRegistry(ExecutorRegistry[BaseReactionExecutor]):
    def __init__(self, executors: Iterable[BaseReactionExecutor]) -> None:
        super().__init__("reaction", executors, key=lambda executor: executor.reaction_type)

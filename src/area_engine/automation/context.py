"""Trigger context passed from a trigger evaluation to its reactions."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any


class TriggerContext:
    """Ordered, string-keyed bag of values produced by one trigger evaluation.

    A context lives for a single evaluation pass of a single workflow and is
    never persisted. ``source_error`` is set when the trigger could not reach
    its source; the context is then empty and the evaluation counts as a
    failed check rather than a quiet "nothing new".
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})
        self.source_error: str | None = None

    @classmethod
    def failed(cls, message: str) -> TriggerContext:
        context = cls()
        context.source_error = message
        return context

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def put(self, key: str, value: Any) -> TriggerContext:
        self._data[key] = value
        return self

    def update(self, values: Mapping[str, Any]) -> TriggerContext:
        self._data.update(values)
        return self

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_str(self, key: str, default: str | None = None) -> str | None:
        value = self._data.get(key)
        if value is None:
            return default
        return str(value)

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """Return an integer value, converting numeric strings.

        Booleans and values that do not parse as integers yield ``default``.
        """
        value = self._data.get(key)
        if value is None or isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        try:
            return int(str(value).strip())
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes"}
        return bool(value)

    def has(self, key: str) -> bool:
        return key in self._data

    def is_empty(self) -> bool:
        return not self._data

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        keys = ", ".join(self._data)
        return f"TriggerContext({keys})"

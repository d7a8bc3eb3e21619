"""Auto-id allocation service.

AutoIdAllocator is a stateful service that hands out auto-generated identities
per entity type. Identities are monotonically increasing and never reused within
the lifetime of the allocator.
"""

from __future__ import annotations

from typing import Any

from entityforge.core.identity.models import AUTO_ID_START, IdCounter, IdValue


class AutoIdAllocator:
    """Allocates auto-integer identities, one counter per entity type.

    A type may expose a custom id-generator as a ``get_auto_id`` classmethod;
    it takes priority over the counter.

    Args:
        start: First value handed out by a counter that has not been seeded.
    """

    def __init__(self, start: int = AUTO_ID_START):
        """Initialize the allocator.

        Args:
            start: First value handed out by a fresh counter.

        Raises:
            ValueError: If start is not a positive integer.
        """
        if start < 1:
            raise ValueError(f"Auto-id counters must start at a positive integer, got {start}")
        self._start = start
        self._counters: dict[str, IdCounter] = {}

    def assign(self, entity_cls: type[Any]) -> IdValue:
        """Produce an identity for a new instance of entity_cls.

        Tries in order:
        1. The type's ``get_auto_id`` hook if it defines one
        2. The type's counter (created at the start value on first use)

        Args:
            entity_cls: Entity type the identity is for.

        Returns:
            The assigned identity value.
        """
        hook = getattr(entity_cls, "get_auto_id", None)
        if callable(hook):
            value = hook()
            if isinstance(value, int) and not isinstance(value, bool):
                self.observe(entity_cls, value)
            return value  # type: ignore[no-any-return]
        return self._counter(entity_cls).take()

    def observe(self, entity_cls: type[Any], value: int) -> None:
        """Keep the counter ahead of an identity assigned elsewhere.

        Explicit identities and identities loaded from storage must never be
        handed out again by the counter.

        Args:
            entity_cls: Entity type the identity belongs to.
            value: An identity value in use.
        """
        counter = self._counter(entity_cls)
        if value >= counter.next_value:
            counter.next_value = value + 1

    def seed(self, entity_cls: type[Any], next_value: int) -> None:
        """Set the next value of a type's counter, never moving it backwards.

        Args:
            entity_cls: Entity type whose counter is seeded.
            next_value: Next identity the counter should hand out.
        """
        counter = self._counters.get(entity_cls.__name__)
        if counter is None:
            self._counters[entity_cls.__name__] = IdCounter(next_value=next_value)
        elif next_value > counter.next_value:
            counter.next_value = next_value

    def peek(self, entity_cls: type[Any]) -> int:
        """Return the next value the type's counter would hand out."""
        return self._counter(entity_cls).next_value

    def reset(self) -> None:
        """Forget all counters."""
        self._counters.clear()

    def _counter(self, entity_cls: type[Any]) -> IdCounter:
        counter = self._counters.get(entity_cls.__name__)
        if counter is None:
            counter = self._counters[entity_cls.__name__] = IdCounter(next_value=self._start)
        return counter

"""Entity identity models.

Usage:
    key = IdentityKey(type_name="Book", value="123456789X")
    counter = IdCounter(next_value=AUTO_ID_START)
"""

from dataclasses import dataclass

type IdValue = str | int
"""An identity value: a string identifier or an auto-generated positive integer."""

AUTO_ID_START = 1001
"""First value handed out by a fresh auto-id counter."""


@dataclass(frozen=True, slots=True)
class IdentityKey:
    """Identity of an entity across all entity types.

    Used where entities of different types share one namespace, e.g. to guard
    recursive retrieval against reference cycles.
    """

    type_name: str
    value: IdValue

    def __hash__(self) -> int:
        return hash((self.type_name, self.value))


@dataclass(slots=True)
class IdCounter:
    """Per-type auto-id counter. `next_value` is the next identity to hand out."""

    next_value: int = AUTO_ID_START

    def take(self) -> int:
        """Hand out the next identity and advance the counter.

        Returns:
            The identity value handed out.
        """
        value = self.next_value
        self.next_value += 1
        return value

"""Constraint violation taxonomy and the check result type.

Violations are exceptions so a property setter can raise them directly,
while batch operations collect them from a CheckResult and filter.

Usage:
    result = check("year", prop, 1222)
    if not result.ok:
        log.warning("%s", result.violations[0])
    value = result.unwrap()  # raises IntervalConstraintViolation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class ViolationKind(Enum):
    """Closed set of constraint violation kinds, including the success case."""

    NONE = auto()
    MANDATORY_VALUE = auto()
    RANGE = auto()
    STRING_LENGTH = auto()
    INTERVAL = auto()
    PATTERN = auto()
    CARDINALITY = auto()
    UNIQUENESS = auto()
    REFERENTIAL_INTEGRITY = auto()
    FROZEN_VALUE = auto()


class ConstraintViolation(Exception):
    """Base class of all constraint violations."""

    kind = ViolationKind.NONE

    def __init__(self, message: str = "", culprit: Any = None):
        super().__init__(message)
        self.message = message
        self.culprit = culprit

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class NoConstraintViolation(ConstraintViolation):
    """Success case: carries the converted or canonicalized value."""

    kind = ViolationKind.NONE

    def __init__(self, checked_value: Any = None, message: str = ""):
        super().__init__(message)
        self.checked_value = checked_value


class MandatoryValueConstraintViolation(ConstraintViolation):
    kind = ViolationKind.MANDATORY_VALUE


class RangeConstraintViolation(ConstraintViolation):
    kind = ViolationKind.RANGE


class StringLengthConstraintViolation(ConstraintViolation):
    kind = ViolationKind.STRING_LENGTH


class IntervalConstraintViolation(ConstraintViolation):
    kind = ViolationKind.INTERVAL


class PatternConstraintViolation(ConstraintViolation):
    kind = ViolationKind.PATTERN


class CardinalityConstraintViolation(ConstraintViolation):
    kind = ViolationKind.CARDINALITY


class UniquenessConstraintViolation(ConstraintViolation):
    kind = ViolationKind.UNIQUENESS


class ReferentialIntegrityConstraintViolation(ConstraintViolation):
    kind = ViolationKind.REFERENTIAL_INTEGRITY


class FrozenValueConstraintViolation(ConstraintViolation):
    kind = ViolationKind.FROZEN_VALUE


@dataclass(slots=True)
class CheckResult:
    """Outcome of checking one property value.

    Either carries the canonicalized value (no violations) or the violations
    found. Callers wanting fail-fast call unwrap(); callers collecting
    partial failures inspect ok and violations.
    """

    value: Any = None
    violations: list[ConstraintViolation] = field(default_factory=list)

    @classmethod
    def success(cls, value: Any) -> CheckResult:
        return cls(value=value)

    @classmethod
    def failure(cls, violation: ConstraintViolation) -> CheckResult:
        return cls(violations=[violation])

    @property
    def ok(self) -> bool:
        """True if no violation was found."""
        return not self.violations

    @property
    def outcomes(self) -> list[ConstraintViolation]:
        """Violations as a list, or [NoConstraintViolation(value)] on success."""
        if self.ok:
            return [NoConstraintViolation(self.value)]
        return list(self.violations)

    def unwrap(self) -> Any:
        """Return the canonicalized value.

        Raises:
            ConstraintViolation: The first violation, if any.
        """
        if self.violations:
            raise self.violations[0]
        return self.value

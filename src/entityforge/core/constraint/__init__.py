"""Constraint checking: violation taxonomy, check results, and validation switches."""

from entityforge.core.constraint.core import (
    Declaration,
    check,
    check_entity_table,
    constraint_checking,
    is_constraint_checking,
    is_referential_integrity_checking,
    lower_cardinality,
    referential_integrity,
    set_constraint_checking,
    set_referential_integrity,
)
from entityforge.core.constraint.models import (
    CardinalityConstraintViolation,
    CheckResult,
    ConstraintViolation,
    FrozenValueConstraintViolation,
    IntervalConstraintViolation,
    MandatoryValueConstraintViolation,
    NoConstraintViolation,
    PatternConstraintViolation,
    RangeConstraintViolation,
    ReferentialIntegrityConstraintViolation,
    StringLengthConstraintViolation,
    UniquenessConstraintViolation,
    ViolationKind,
)

__all__ = [
    # Violations
    "ViolationKind",
    "ConstraintViolation",
    "NoConstraintViolation",
    "MandatoryValueConstraintViolation",
    "RangeConstraintViolation",
    "StringLengthConstraintViolation",
    "IntervalConstraintViolation",
    "PatternConstraintViolation",
    "CardinalityConstraintViolation",
    "UniquenessConstraintViolation",
    "ReferentialIntegrityConstraintViolation",
    "FrozenValueConstraintViolation",
    "CheckResult",
    # Checking
    "Declaration",
    "check",
    "check_entity_table",
    "lower_cardinality",
    # Switches
    "constraint_checking",
    "referential_integrity",
    "is_constraint_checking",
    "is_referential_integrity_checking",
    "set_constraint_checking",
    "set_referential_integrity",
]

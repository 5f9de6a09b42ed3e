"""Access decisions and field masking for storeauth."""

from .engine import AccessDecisionEngine, Decision, DecisionReason, Effect, Resource
from .fields import (
    ALWAYS_VISIBLE_FIELDS,
    PRIVILEGED_FIELDS,
    FieldVisibilityMask,
    person_record,
)

__all__ = [
    "AccessDecisionEngine",
    "Decision",
    "DecisionReason",
    "Effect",
    "Resource",
    "ALWAYS_VISIBLE_FIELDS",
    "PRIVILEGED_FIELDS",
    "FieldVisibilityMask",
    "person_record",
]

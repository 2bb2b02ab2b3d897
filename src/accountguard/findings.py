"""
Finding: one diagnostic emitted by the rule engine.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from enum import Enum


class Severity(Enum):
    """Severity levels for findings."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"critical": 3, "warning": 2, "info": 1}[self.value]

    @classmethod
    def parse(cls, value: str) -> "Severity":
        return cls(value.strip().lower())


class Remediation(Enum):
    """Fix categories, one per canonical remediation."""
    ADD_SIGNER_CHECK = "AddSignerCheck"
    USE_TYPED_ACCOUNT_OR_DOCUMENT = "UseTypedAccountOrDocument"
    ADD_RELATIONAL_CONSTRAINT = "AddRelationalConstraint"
    DERIVE_FROM_SIGNER_SEEDS = "DeriveFromSignerSeeds"
    PERSIST_BUMP = "PersistBump"
    USE_CHECKED_ARITHMETIC = "UseCheckedArithmetic"
    ADD_BOUNDS_CHECK = "AddBoundsCheck"
    VALIDATE_TIME_ORDERING = "ValidateTimeOrdering"
    FIX_SPACE_CALCULATION = "FixSpaceCalculation"
    GUARD_AGAINST_REINITIALIZATION = "GuardAgainstReinitialization"


@dataclass(frozen=True)
class Finding:
    """A detected policy violation."""
    rule_id: str
    severity: Severity
    instruction: str
    slots: Tuple[str, ...]
    message: str
    remediation: Remediation
    effect_index: Optional[int] = None  # effect that produced the finding

    def __post_init__(self):
        if not self.slots and self.effect_index is None:
            raise ValueError(f"{self.rule_id}: finding without slot or effect provenance")

    @property
    def dedup_key(self) -> Tuple:
        # Sub-checks of one rule are told apart by remediation; findings
        # without slots are only identified by their effect.
        slots = tuple(sorted(self.slots))
        return (
            self.rule_id,
            self.instruction,
            slots,
            self.remediation.value,
            None if slots else self.effect_index,
        )

    @property
    def sort_key(self) -> Tuple:
        return (
            -self.severity.rank,
            self.rule_id,
            tuple(sorted(self.slots)),
            -1 if self.effect_index is None else self.effect_index,
            self.message,
        )

    def to_dict(self) -> Dict:
        return {
            "rule": self.rule_id,
            "severity": self.severity.value,
            "instruction": self.instruction,
            "slots": list(self.slots),
            "effect": self.effect_index,
            "message": self.message,
            "remediation": self.remediation.value,
        }

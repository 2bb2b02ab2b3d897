"""
Rule Playbook: catalog of the account-validation rules the engine enforces.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum

from ..findings import Remediation, Severity


class VulnerabilityClass(Enum):
    """The documented vulnerability classes."""
    MISSING_SIGNER = "missing_signer"
    UNCHECKED_ACCOUNT = "unchecked_account"
    MISSING_RELATION = "missing_relation"
    PDA_BINDING = "pda_binding"
    INPUT_VALIDATION = "input_validation"


SIGNER_AUTHORITY = "AG001"
TYPED_ACCOUNT = "AG002"
OWNERSHIP_CONSTRAINT = "AG003"
PDA_DERIVATION = "AG004"
INPUT_VALIDATION = "AG005"
REINITIALIZATION_GUARD = "AG006"


@dataclass(frozen=True)
class RuleSpec:
    """A rule in the playbook."""
    rule_id: str
    title: str
    vulnerability_class: VulnerabilityClass
    severity: Severity  # highest severity the rule emits
    remediation: Remediation
    description: str
    recommendation: str
    cwe_id: Optional[str] = None


class RulePlaybook:
    """
    Collection of the rules known to the engine.

    Used to validate engine options and to describe findings.
    """

    def __init__(self):
        self.rules: List[RuleSpec] = self._load_rules()
        self._by_id: Dict[str, RuleSpec] = {r.rule_id: r for r in self.rules}

    def _load_rules(self) -> List[RuleSpec]:
        """Load the standard rule set."""
        return [
            RuleSpec(
                rule_id=SIGNER_AUTHORITY,
                title="Signer-Authority",
                vulnerability_class=VulnerabilityClass.MISSING_SIGNER,
                severity=Severity.CRITICAL,
                remediation=Remediation.ADD_SIGNER_CHECK,
                description=(
                    "State mutations, value transfers and account closures must be "
                    "authorized by a signer bound to the affected account."
                ),
                recommendation=(
                    "Declare the authority as Signer<'info> and bind it with "
                    "has_one = authority or seeds containing authority.key()."
                ),
                cwe_id="CWE-862",
            ),
            RuleSpec(
                rule_id=TYPED_ACCOUNT,
                title="Typed-Account",
                vulnerability_class=VulnerabilityClass.UNCHECKED_ACCOUNT,
                severity=Severity.CRITICAL,
                remediation=Remediation.USE_TYPED_ACCOUNT_OR_DOCUMENT,
                description=(
                    "Accounts that are written to or invoked must be deserialized "
                    "through a typed wrapper that checks owner and discriminator."
                ),
                recommendation=(
                    "Use Account<'info, T> or Program<'info, T>; an UncheckedAccount "
                    "needs an owner constraint and a /// CHECK: comment."
                ),
                cwe_id="CWE-20",
            ),
            RuleSpec(
                rule_id=OWNERSHIP_CONSTRAINT,
                title="Ownership-Constraint",
                vulnerability_class=VulnerabilityClass.MISSING_RELATION,
                severity=Severity.CRITICAL,
                remediation=Remediation.ADD_RELATIONAL_CONSTRAINT,
                description=(
                    "Accounts joined by a transfer must hold the same resource, and "
                    "accounts storing an owner key must be tied to that owner."
                ),
                recommendation=(
                    "Add constraint = from.mint == to.mint, or has_one = owner on "
                    "accounts that store an owner."
                ),
                cwe_id="CWE-639",
            ),
            RuleSpec(
                rule_id=PDA_DERIVATION,
                title="PDA-Derivation",
                vulnerability_class=VulnerabilityClass.PDA_BINDING,
                severity=Severity.CRITICAL,
                remediation=Remediation.DERIVE_FROM_SIGNER_SEEDS,
                description=(
                    "Owner-scoped accounts must be derived from seeds that include "
                    "the owner's key, and the bump found at init must be stored."
                ),
                recommendation=(
                    "Use seeds = [b\"prefix\", user.key().as_ref()], bump at init, "
                    "store the bump and later use bump = account.bump."
                ),
                cwe_id="CWE-706",
            ),
            RuleSpec(
                rule_id=INPUT_VALIDATION,
                title="Input-Validation",
                vulnerability_class=VulnerabilityClass.INPUT_VALIDATION,
                severity=Severity.CRITICAL,
                remediation=Remediation.USE_CHECKED_ARITHMETIC,
                description=(
                    "Arithmetic on balances must be checked, indexes bounded, time "
                    "comparisons validated and init space sized for variable fields."
                ),
                recommendation=(
                    "Use checked_add/checked_sub, verify index < len(), require "
                    "ordered timestamps and #[max_len] on String/Vec fields."
                ),
                cwe_id="CWE-190",
            ),
            RuleSpec(
                rule_id=REINITIALIZATION_GUARD,
                title="Reinitialization-Guard",
                vulnerability_class=VulnerabilityClass.PDA_BINDING,
                severity=Severity.CRITICAL,
                remediation=Remediation.GUARD_AGAINST_REINITIALIZATION,
                description=(
                    "An address must not be initializable from more than one "
                    "instruction without checking it is still empty."
                ),
                recommendation=(
                    "Initialize each PDA from one instruction, or add a constraint "
                    "checking an is_initialized flag or empty data."
                ),
                cwe_id="CWE-665",
            ),
        ]

    def get(self, rule_id: str) -> Optional[RuleSpec]:
        """Get a rule by id."""
        return self._by_id.get(rule_id)

    @property
    def rule_ids(self) -> List[str]:
        return [r.rule_id for r in self.rules]

    def by_class(self, vulnerability_class: VulnerabilityClass) -> List[RuleSpec]:
        return [r for r in self.rules if r.vulnerability_class == vulnerability_class]

"""
Rule module: the account-validation rules and the engine that applies them.
"""

from .playbook import RulePlaybook, RuleSpec, VulnerabilityClass
from .engine import RuleEngine, InstructionEvaluation, RULE_CHECKS
from .checks import RuleContext

__all__ = [
    "RulePlaybook",
    "RuleSpec",
    "VulnerabilityClass",
    "RuleEngine",
    "InstructionEvaluation",
    "RULE_CHECKS",
    "RuleContext",
]

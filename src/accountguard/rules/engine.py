"""
Rule Engine: evaluates the rule set against one instruction at a time.
"""

import dataclasses
import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..analysis.models import Instruction, ProgramModel
from ..analysis.program_index import ProgramIndex
from ..analysis.relation_graph import RelationGraphBuilder
from ..analysis.resolver import ConstraintResolver
from ..config import EngineOptions
from ..errors import ModelError
from ..findings import Finding, Severity
from .checks import (
    RuleContext,
    check_input_validation,
    check_ownership_constraints,
    check_pda_derivation,
    check_reinitialization,
    check_signer_authority,
    check_typed_accounts,
)
from .playbook import (
    INPUT_VALIDATION,
    OWNERSHIP_CONSTRAINT,
    PDA_DERIVATION,
    REINITIALIZATION_GUARD,
    SIGNER_AUTHORITY,
    TYPED_ACCOUNT,
    RulePlaybook,
)

logger = logging.getLogger(__name__)

RuleCheck = Callable[[RuleContext], Iterator[Finding]]

RULE_CHECKS: Dict[str, RuleCheck] = {
    SIGNER_AUTHORITY: check_signer_authority,
    TYPED_ACCOUNT: check_typed_accounts,
    OWNERSHIP_CONSTRAINT: check_ownership_constraints,
    PDA_DERIVATION: check_pda_derivation,
    INPUT_VALIDATION: check_input_validation,
    REINITIALIZATION_GUARD: check_reinitialization,
}


class InstructionEvaluation:
    """
    Findings for one instruction.

    Iterating runs the enabled rules lazily; iterating again runs them
    again and yields the same findings in the same order.
    """

    def __init__(
        self,
        context: RuleContext,
        rules: List[Tuple[str, RuleCheck]],
        overrides: Dict[str, Severity],
    ):
        self.context = context
        self._rules = rules
        self._overrides = overrides

    @property
    def instruction(self) -> str:
        return self.context.name

    @property
    def graph(self):
        return self.context.graph

    def __iter__(self) -> Iterator[Finding]:
        for rule_id, check in self._rules:
            override = self._overrides.get(rule_id)
            for finding in check(self.context):
                if override is not None and finding.severity != override:
                    finding = dataclasses.replace(finding, severity=override)
                yield finding

    def findings(self) -> List[Finding]:
        return list(self)


class RuleEngine:
    """
    Applies the account-validation rules to a program's instructions.

    The engine keeps no mutable state between evaluations: everything it
    holds is built once from the program and the options.
    """

    def __init__(self, program: ProgramModel, options: Optional[EngineOptions] = None):
        """
        Initialize the engine.

        Args:
            program: Program Model to evaluate
            options: Disabled rules and severity overrides

        Raises:
            ConfigError: if the options mention unknown rules
        """
        self.program = program
        self.options = options or EngineOptions()
        self.playbook = RulePlaybook()
        self.options.validate(self.playbook.rule_ids)

        self.index = ProgramIndex(program)
        self.resolver = ConstraintResolver()
        self.graph_builder = RelationGraphBuilder()
        self._rules = [
            (rule_id, check)
            for rule_id, check in RULE_CHECKS.items()
            if self.options.is_enabled(rule_id)
        ]
        self._overrides = self.options.overrides

    @property
    def enabled_rules(self) -> List[str]:
        return [rule_id for rule_id, _ in self._rules]

    def evaluate(self, instruction: Instruction) -> InstructionEvaluation:
        """
        Evaluate one instruction.

        Resolution and graph construction happen here, so a structural
        problem surfaces immediately; rules run when the result is iterated.

        Args:
            instruction: An instruction of this engine's program

        Returns:
            Restartable sequence of findings

        Raises:
            ModelError: if the instruction is structurally inconsistent
        """
        if instruction.name not in self.index:
            raise ModelError("instruction is not part of the program", instruction.name)

        resolved = self.resolver.resolve(instruction)
        graph = self.graph_builder.build(resolved)
        context = RuleContext(resolved=resolved, graph=graph, index=self.index)
        return InstructionEvaluation(context, self._rules, self._overrides)

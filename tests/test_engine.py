"""Tests for the rule engine and its options."""

import pytest

from accountguard.config import EngineOptions
from accountguard.errors import ConfigError, ModelError
from accountguard.findings import Severity
from accountguard.rules import RULE_CHECKS, RuleEngine, RulePlaybook

from conftest import instruction, account, program, transfer_tokens, update_greeting, SIGNER


class TestRuleEngine:
    """Tests for RuleEngine."""

    def test_all_rules_enabled_by_default(self, vulnerable_program):
        engine = RuleEngine(vulnerable_program)
        assert engine.enabled_rules == ["AG001", "AG002", "AG003", "AG004", "AG005", "AG006"]

    def test_every_playbook_rule_has_a_check(self):
        assert set(RulePlaybook().rule_ids) == set(RULE_CHECKS)

    def test_disabled_rule_is_skipped(self, vulnerable_program):
        engine = RuleEngine(vulnerable_program, EngineOptions(disabled_rules={"AG003"}))
        ix = vulnerable_program.get_instruction("transfer_tokens")

        assert "AG003" not in engine.enabled_rules
        assert list(engine.evaluate(ix)) == []

    def test_severity_override(self, vulnerable_program):
        options = EngineOptions(severity_overrides={"AG003": "warning"})
        engine = RuleEngine(vulnerable_program, options)
        ix = vulnerable_program.get_instruction("transfer_tokens")

        findings = engine.evaluate(ix).findings()
        assert [f.severity for f in findings] == [Severity.WARNING]

    def test_unknown_rule_is_config_error(self, vulnerable_program):
        with pytest.raises(ConfigError, match="AG999"):
            RuleEngine(vulnerable_program, EngineOptions(disabled_rules={"AG999"}))

    def test_unknown_instruction(self, vulnerable_program):
        engine = RuleEngine(vulnerable_program)
        stranger = instruction("stranger", [account("user", SIGNER)])

        with pytest.raises(ModelError, match="not part of the program"):
            engine.evaluate(stranger)

    def test_evaluation_is_restartable(self, vulnerable_program):
        engine = RuleEngine(vulnerable_program)
        evaluation = engine.evaluate(vulnerable_program.get_instruction("create_escrow"))

        first = list(evaluation)
        assert first
        assert list(evaluation) == first
        assert evaluation.instruction == "create_escrow"

    def test_partial_iteration(self, vulnerable_program):
        engine = RuleEngine(vulnerable_program)
        evaluation = engine.evaluate(vulnerable_program.get_instruction("create_escrow"))

        head = next(iter(evaluation))
        assert head == evaluation.findings()[0]

    def test_structural_error_surfaces_on_evaluate(self):
        broken = instruction("broken", [account("user", SIGNER), account("user", SIGNER)])
        prog = program(broken)

        with pytest.raises(ModelError):
            RuleEngine(prog).evaluate(broken)

    def test_same_slot_names_in_other_instructions_are_independent(self):
        prog = program(transfer_tokens(), update_greeting(with_binding=True))
        engine = RuleEngine(prog)

        graph = engine.evaluate(prog.get_instruction("update_greeting")).graph
        assert "from_account" not in graph.nodes


class TestEngineOptions:
    """Tests for EngineOptions."""

    def test_overrides_normalized(self):
        options = EngineOptions(severity_overrides={"AG005": "INFO", "AG001": Severity.WARNING})

        assert options.severity_overrides == (("AG001", Severity.WARNING), ("AG005", Severity.INFO))
        assert options.overrides["AG005"] == Severity.INFO

    def test_bad_severity(self):
        with pytest.raises(ConfigError, match="fatal"):
            EngineOptions(severity_overrides={"AG001": "fatal"})

    def test_merge(self):
        base = EngineOptions(disabled_rules={"AG001"}, severity_overrides={"AG002": "info"})
        merged = base.merge(disabled_rules=["AG004"], severity_overrides={"AG002": "critical"})

        assert merged.disabled_rules == frozenset({"AG001", "AG004"})
        assert merged.overrides == {"AG002": Severity.CRITICAL}
        assert base.overrides == {"AG002": Severity.INFO}

    def test_dict_round_trip(self):
        options = EngineOptions.from_dict({
            "disabledRules": ["AG006"],
            "severityOverrides": {"AG003": "warning"},
        })
        assert EngineOptions.from_dict(options.to_dict()) == options

    def test_snake_case_keys(self):
        options = EngineOptions.from_dict({"disabled_rules": ["AG002"]})
        assert not options.is_enabled("AG002")

    def test_disabled_rules_must_be_a_list(self):
        with pytest.raises(ConfigError):
            EngineOptions.from_dict({"disabledRules": "AG001"})

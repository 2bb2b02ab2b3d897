"""
Engine options.

Options are fixed when the engine is constructed: which rules are disabled
and which rules have their severity overridden.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from .errors import ConfigError
from .findings import Severity

DISABLED_RULES_ENV = "ACCOUNTGUARD_DISABLED_RULES"


@dataclass(frozen=True)
class EngineOptions:
    """Immutable engine configuration."""
    disabled_rules: FrozenSet[str] = frozenset()
    severity_overrides: Tuple[Tuple[str, Severity], ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "disabled_rules", frozenset(self.disabled_rules))
        overrides = self.severity_overrides
        if isinstance(overrides, Mapping):
            overrides = overrides.items()
        normalized = []
        for rule_id, severity in overrides:
            if not isinstance(severity, Severity):
                try:
                    severity = Severity.parse(str(severity))
                except ValueError:
                    raise ConfigError(f"Unknown severity '{severity}' for rule {rule_id}")
            normalized.append((rule_id, severity))
        object.__setattr__(self, "severity_overrides", tuple(sorted(normalized, key=lambda p: p[0])))

    @property
    def overrides(self) -> Dict[str, Severity]:
        return dict(self.severity_overrides)

    def is_enabled(self, rule_id: str) -> bool:
        return rule_id not in self.disabled_rules

    def validate(self, known_rules: Iterable[str]):
        """Raise ConfigError if options mention rules the engine does not know."""
        known = set(known_rules)
        unknown = (set(self.disabled_rules) | {r for r, _ in self.severity_overrides}) - known
        if unknown:
            raise ConfigError(f"Unknown rule id(s): {', '.join(sorted(unknown))}")

    def merge(
        self,
        disabled_rules: Iterable[str] = (),
        severity_overrides: Optional[Mapping[str, Union[str, Severity]]] = None,
    ) -> "EngineOptions":
        """Return new options with extra disabled rules and overrides layered on top."""
        overrides = self.overrides
        overrides.update(severity_overrides or {})
        return EngineOptions(
            disabled_rules=self.disabled_rules | frozenset(disabled_rules),
            severity_overrides=overrides,
        )

    @classmethod
    def from_dict(cls, data: Mapping) -> "EngineOptions":
        """
        Build options from a dictionary.

        Accepts `disabledRules`/`severityOverrides` as well as their
        snake_case spellings.
        """
        disabled = data.get("disabledRules", data.get("disabled_rules", []))
        overrides = data.get("severityOverrides", data.get("severity_overrides", {}))
        if isinstance(disabled, str) or not isinstance(disabled, Iterable):
            raise ConfigError("disabledRules must be a list of rule ids")
        if not isinstance(overrides, Mapping):
            raise ConfigError("severityOverrides must map rule ids to severities")
        return cls(disabled_rules=frozenset(disabled), severity_overrides=overrides)

    def to_dict(self) -> Dict:
        return {
            "disabledRules": sorted(self.disabled_rules),
            "severityOverrides": {r: s.value for r, s in self.severity_overrides},
        }


def load_options(path: Union[str, Path]) -> EngineOptions:
    """Load engine options from a JSON file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Options file not found: {path}")

    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid options file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Options file {path} must contain a JSON object")
    return EngineOptions.from_dict(data)


def disabled_rules_from_env(environ: Optional[Mapping[str, str]] = None) -> FrozenSet[str]:
    """Read a comma separated rule list from ACCOUNTGUARD_DISABLED_RULES."""
    environ = os.environ if environ is None else environ
    raw = environ.get(DISABLED_RULES_ENV, "")
    return frozenset(part.strip() for part in raw.split(",") if part.strip())

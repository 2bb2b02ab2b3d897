"""
Diagnostic Aggregator: collects findings into the final report.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import ModelError
from ..findings import Finding, Severity


@dataclass(frozen=True)
class StructuralFailure:
    """An instruction that could not be evaluated because the model is inconsistent."""
    instruction: str
    message: str
    slot: Optional[str] = None

    @classmethod
    def from_error(cls, instruction: str, error: ModelError) -> "StructuralFailure":
        return cls(instruction=instruction, message=error.detail, slot=error.slot)

    def to_dict(self) -> Dict:
        return {"instruction": self.instruction, "message": self.message, "slot": self.slot}


@dataclass(frozen=True)
class Report:
    """
    Final, read-only analysis result.

    `instructions` holds (name, findings) pairs in program order; findings
    within an instruction are ordered by severity, then rule id.
    """
    program: str
    instructions: Tuple[Tuple[str, Tuple[Finding, ...]], ...] = ()
    failures: Tuple[StructuralFailure, ...] = ()
    counts: Tuple[Tuple[Severity, int], ...] = field(default_factory=tuple)

    @property
    def by_instruction(self) -> Dict[str, Tuple[Finding, ...]]:
        return dict(self.instructions)

    def findings_for(self, instruction: str) -> Tuple[Finding, ...]:
        return self.by_instruction.get(instruction, ())

    @property
    def findings(self) -> List[Finding]:
        return [f for _, batch in self.instructions for f in batch]

    @property
    def total_findings(self) -> int:
        return sum(len(batch) for _, batch in self.instructions)

    def count(self, severity: Severity) -> int:
        return dict(self.counts).get(severity, 0)

    @property
    def has_critical(self) -> bool:
        return self.count(Severity.CRITICAL) > 0

    def to_dict(self) -> Dict:
        return {
            "program": self.program,
            "total_findings": self.total_findings,
            "counts": {sev.value: n for sev, n in self.counts},
            "instructions": {
                name: [f.to_dict() for f in batch] for name, batch in self.instructions
            },
            "structural_failures": [f.to_dict() for f in self.failures],
            "summary": self.summary(),
        }

    def summary(self) -> str:
        """Generate a human-readable summary."""
        critical = self.count(Severity.CRITICAL)
        warning = self.count(Severity.WARNING)
        info = self.count(Severity.INFO)
        failed = ""
        if self.failures:
            failed = f" ({len(self.failures)} instruction(s) could not be analyzed)"
        if critical > 0:
            return f"🚨 CRITICAL: {critical} critical finding(s) require immediate attention{failed}"
        elif warning > 0:
            return f"⚠️ WARNING: {warning} warning(s) to review{failed}"
        elif info > 0:
            return f"ℹ️ INFO: {info} informational finding(s){failed}"
        else:
            return f"✅ No findings{failed}"


class DiagnosticAggregator:
    """
    Accumulates finding batches from concurrent workers.

    Each worker records one batch per instruction; writes are serialized
    by a lock. The aggregator deduplicates but never filters.
    """

    def __init__(self, program: str, instruction_order: Sequence[str] = ()):
        self.program = program
        self._order = list(instruction_order)
        self._lock = threading.Lock()
        self._batches: Dict[str, List[Finding]] = {}
        self._failures: Dict[str, StructuralFailure] = {}

    def record(self, instruction: str, findings: Sequence[Finding]):
        """Record the findings of one evaluated instruction."""
        with self._lock:
            self._batches.setdefault(instruction, []).extend(findings)

    def record_failure(self, instruction: str, error: ModelError):
        with self._lock:
            self._failures[instruction] = StructuralFailure.from_error(instruction, error)

    def build_report(self) -> Report:
        """Deduplicate, order and group everything recorded so far."""
        with self._lock:
            batches = {name: list(batch) for name, batch in self._batches.items()}
            failures = dict(self._failures)

        grouped = []
        totals = {sev: 0 for sev in Severity}
        for name in self._ordered(batches):
            findings = dedupe(batches[name])
            for f in findings:
                totals[f.severity] += 1
            grouped.append((name, tuple(findings)))

        return Report(
            program=self.program,
            instructions=tuple(grouped),
            failures=tuple(failures[name] for name in self._ordered(failures)),
            counts=tuple((sev, totals[sev]) for sev in Severity),
        )

    def _ordered(self, names) -> List[str]:
        known = [n for n in self._order if n in names]
        extra = sorted(n for n in names if n not in self._order)
        return known + extra


def dedupe(findings: Sequence[Finding]) -> List[Finding]:
    """Drop exact duplicates and sort by severity descending, then rule id."""
    ordered = sorted(findings, key=lambda f: f.sort_key)
    seen = set()
    unique = []
    for f in ordered:
        if f.dedup_key in seen:
            continue
        seen.add(f.dedup_key)
        unique.append(f)
    return unique

"""
Reporting module: aggregation of findings into reports.
"""

from .aggregator import DiagnosticAggregator, Report, StructuralFailure
from .runner import ProgramAnalyzer, InstructionResult, analyze_program

__all__ = [
    "DiagnosticAggregator",
    "Report",
    "StructuralFailure",
    "ProgramAnalyzer",
    "InstructionResult",
    "analyze_program",
]

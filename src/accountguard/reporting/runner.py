"""
Program Analyzer: evaluates all instructions of a program in parallel.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from ..analysis.models import Instruction, ProgramModel
from ..config import EngineOptions
from ..errors import ModelError
from ..findings import Finding
from ..rules.engine import RuleEngine
from .aggregator import DiagnosticAggregator, Report

logger = logging.getLogger(__name__)


@dataclass
class InstructionResult:
    """Outcome of evaluating a single instruction."""
    instruction: str
    findings: List[Finding] = field(default_factory=list)
    error: Optional[ModelError] = None
    execution_time_ms: float = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class ProgramAnalyzer:
    """
    Runs the rule engine over every instruction of a program.

    Instructions share nothing mutable, so each one is evaluated on its
    own worker thread. A ModelError only affects the instruction it was
    raised for.
    """

    def __init__(
        self,
        program: ProgramModel,
        options: Optional[EngineOptions] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            program: Program Model to analyze
            options: Engine options
            max_workers: Worker thread count (default: executor default)
        """
        self.program = program
        self.engine = RuleEngine(program, options)
        self.max_workers = max_workers

    def evaluate(self, instruction: Instruction) -> InstructionResult:
        """Evaluate one instruction, capturing structural failures."""
        start_time = time.time()
        try:
            findings = self.engine.evaluate(instruction).findings()
        except ModelError as e:
            logger.warning("skipping %s: %s", instruction.name, e)
            return InstructionResult(
                instruction=instruction.name,
                error=e,
                execution_time_ms=(time.time() - start_time) * 1000,
            )
        logger.debug("%s: %d finding(s)", instruction.name, len(findings))
        return InstructionResult(
            instruction=instruction.name,
            findings=findings,
            execution_time_ms=(time.time() - start_time) * 1000,
        )

    def stream(self) -> Iterator[InstructionResult]:
        """
        Yield results as instructions finish.

        Closing the iterator early cancels instructions not yet started;
        results already yielded stay valid.
        """
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = [executor.submit(self.evaluate, ix) for ix in self.program.instructions]
            for future in as_completed(futures):
                yield future.result()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def run(
        self,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Report:
        """
        Analyze the whole program.

        Args:
            progress_callback: Optional callback(done, total, instruction),
                called after each instruction with done counting from 1

        Returns:
            Report grouped by instruction in declaration order
        """
        aggregator = DiagnosticAggregator(
            self.program.name,
            [ix.name for ix in self.program.instructions],
        )
        total = len(self.program.instructions)

        def _work(ix: Instruction) -> InstructionResult:
            result = self.evaluate(ix)
            if result.ok:
                aggregator.record(result.instruction, result.findings)
            else:
                aggregator.record_failure(result.instruction, result.error)
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(_work, ix) for ix in self.program.instructions]
            for done, future in enumerate(as_completed(futures), start=1):
                result = future.result()
                if progress_callback:
                    progress_callback(done, total, result.instruction)

        report = aggregator.build_report()
        logger.debug("%s: %s", self.program.name, report.summary())
        return report


def analyze_program(
    program: ProgramModel,
    options: Optional[EngineOptions] = None,
    max_workers: Optional[int] = None,
) -> Report:
    """Convenience wrapper: analyze a program and return its report."""
    return ProgramAnalyzer(program, options, max_workers).run()

"""
CLI entry point for accountguard.

Usage:
    accountguard check program_model.json
    accountguard check program_model.json --disable AG004 --severity AG005=warning -o report.json
    accountguard rules
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

console = Console()

SEVERITY_COLORS = {"critical": "red", "warning": "yellow", "info": "blue"}


def load_env():
    """Load .env file from parent directories."""
    current = Path.cwd()
    for _ in range(5):  # Check up to 5 parent dirs
        env_file = current / ".env"
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        os.environ.setdefault(key.strip(), value.strip())
            break
        current = current.parent


def setup_logging(verbose: bool = False):
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def parse_severity_overrides(values):
    """Parse RULE=LEVEL pairs."""
    overrides = {}
    for item in values or []:
        if "=" not in item:
            raise ValueError(f"Expected RULE=LEVEL, got '{item}'")
        rule_id, level = item.split("=", 1)
        overrides[rule_id.strip()] = level.strip()
    return overrides


def build_options(args: argparse.Namespace):
    """Combine options file, environment and command-line flags."""
    from accountguard.config import EngineOptions, load_options, disabled_rules_from_env

    options = load_options(args.config) if args.config else EngineOptions()
    return options.merge(
        disabled_rules=set(args.disable or []) | disabled_rules_from_env(),
        severity_overrides=parse_severity_overrides(args.severity),
    )


def run_check(args: argparse.Namespace) -> int:
    """Analyze a program model and print the report."""
    load_env()
    setup_logging(args.verbose)

    model_path = args.model

    console.print()
    console.print(Panel(
        f"[bold cyan]Account Validation Check[/bold cyan]\n\n"
        f"[dim]Model: {model_path}[/dim]",
        title="[bold]🛡️ accountguard[/bold]",
    ))
    console.print()

    from accountguard.analysis import ModelLoader
    from accountguard.errors import AccountGuardError
    from accountguard.reporting import ProgramAnalyzer

    try:
        program = ModelLoader().parse_file(model_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except AccountGuardError as e:
        console.print(f"[red]Error loading model: {e}[/red]")
        return 1

    try:
        options = build_options(args)
        analyzer = ProgramAnalyzer(program, options=options, max_workers=args.workers)
    except (AccountGuardError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error in options: {e}[/red]")
        return 1

    console.print("[green]✓ Model loaded[/green]")
    console.print(f"  [dim]Program: {program.name}[/dim]")
    console.print(f"  [dim]Instructions: {len(program.instructions)}[/dim]")
    console.print(f"  [dim]Rules: {', '.join(analyzer.engine.enabled_rules)}[/dim]")
    console.print()

    def progress_callback(current, total, name):
        console.print(f"  [{current}/{total}] {name}", style="dim")

    report = analyzer.run(progress_callback=progress_callback if args.verbose else None)

    # Findings per instruction
    for name, findings in report.instructions:
        if not findings:
            console.print(f"[green]✓ {name}[/green]")
            continue

        table = Table(title=f"{name}", title_justify="left")
        table.add_column("Severity")
        table.add_column("Rule", style="cyan")
        table.add_column("Accounts", style="dim")
        table.add_column("Finding")
        table.add_column("Fix", style="green")

        for f in findings:
            color = SEVERITY_COLORS.get(f.severity.value, "white")
            table.add_row(
                f"[{color}]{f.severity.value.upper()}[/{color}]",
                f.rule_id,
                ", ".join(f.slots) or f"effect #{f.effect_index}",
                f.message,
                f.remediation.value,
            )
        console.print(table)

    if report.failures:
        console.print()
        console.print("[bold red]Structural failures[/bold red]")
        for failure in report.failures:
            console.print(f"  [red]✗ {failure.instruction}: {failure.message}[/red]")

    if args.mermaid:
        for ix in program.instructions:
            if ix.name in {f.instruction for f in report.failures}:
                continue
            graph = analyzer.engine.evaluate(ix).graph
            console.print(f"\n[bold]Relation Graph: {ix.name}[/bold]")
            console.print("```mermaid")
            console.print(graph.to_mermaid())
            console.print("```")

    console.print()
    console.print(report.summary())

    if args.output:
        with open(args.output, "w") as f:
            json.dump(report.to_dict(), f, indent=2)
        console.print(f"\n[dim]Report exported to: {args.output}[/dim]")

    if report.failures:
        return 1
    if report.has_critical:
        return 2
    return 0


def list_rules(args: argparse.Namespace) -> int:
    """List the rules the engine enforces."""
    from accountguard.rules import RulePlaybook

    playbook = RulePlaybook()

    console.print()
    table = Table(title="Account Validation Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Title")
    table.add_column("Class", style="dim")
    table.add_column("CWE", style="dim")
    table.add_column("Recommendation", style="green")

    for rule in playbook.rules:
        table.add_row(
            rule.rule_id,
            rule.title,
            rule.vulnerability_class.value,
            rule.cwe_id or "-",
            rule.recommendation,
        )

    console.print(table)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="accountguard",
        description="Static account-validation checks for Solana program models",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check command
    check_parser = subparsers.add_parser("check", help="Check a program model")
    check_parser.add_argument("model", type=str, help="Path to program model JSON file")
    check_parser.add_argument(
        "--config", "-c",
        type=str,
        help="JSON options file (disabledRules, severityOverrides)"
    )
    check_parser.add_argument(
        "--disable", "-d",
        action="append",
        metavar="RULE",
        help="Disable a rule (repeatable)"
    )
    check_parser.add_argument(
        "--severity", "-s",
        action="append",
        metavar="RULE=LEVEL",
        help="Override a rule's severity (repeatable)"
    )
    check_parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Worker threads (default: automatic)"
    )
    check_parser.add_argument(
        "--output", "-o",
        type=str,
        help="Output file for JSON report"
    )
    check_parser.add_argument(
        "--mermaid",
        action="store_true",
        help="Print relation graphs as Mermaid diagrams"
    )
    check_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )

    # rules command
    subparsers.add_parser("rules", help="List available rules")

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "check":
        return run_check(args)
    elif args.command == "rules":
        return list_rules(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())

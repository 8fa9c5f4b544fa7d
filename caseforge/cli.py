"""Command line helpers for caseforge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from random import Random

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import CaseForgeConfig
from .diagnostics.burst_simulator import BurstReport, BurstSimulator
from .validators import validate_config

console = Console()


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def run_simulator() -> None:
    parser = argparse.ArgumentParser(description="caseforge burst simulator")
    parser.add_argument("--gestures", type=int, default=10, help="Number of separate gestures")
    parser.add_argument("--taps", type=int, default=3, help="Triggers fired per gesture")
    parser.add_argument("--interval-ms", type=float, default=1_000, help="Virtual time between gestures")
    parser.add_argument("--balance", type=int, default=1_000, help="Starting balance")
    parser.add_argument("--price", type=int, default=100, help="Case price")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args()

    configure_logging(args.log_level)
    config = CaseForgeConfig.from_env()
    config.storage.backend = "memory"
    simulator = BurstSimulator(config, rng=Random(args.seed), case_price=args.price)
    report = asyncio.run(
        simulator.run(
            gestures=args.gestures,
            taps=args.taps,
            interval_ms=args.interval_ms,
            balance=args.balance,
        )
    )
    render_report(report)


def render_report(report: BurstReport) -> None:
    console.print(
        f"[bold]Simulated {report.gestures} gestures / {report.triggers} triggers[/bold]"
    )
    console.print(f"Case openings: {report.openings}")
    console.print(f"Balance: {report.starting_balance} -> {report.final_balance}")

    outcomes = Table(show_header=True, header_style="bold")
    outcomes.add_column("Outcome")
    outcomes.add_column("Count", justify="right")
    for outcome, count in sorted(report.outcomes.items()):
        outcomes.add_row(outcome, str(count))
    console.print(outcomes)

    audit = Table(show_header=True, header_style="bold")
    audit.add_column("Time")
    audit.add_column("Action")
    audit.add_column("Success")
    audit.add_column("Risk")
    audit.add_column("Details")
    for entry in reversed(list(report.audit)):
        style = {"high": "red", "medium": "yellow"}.get(entry.risk_level.value)
        audit.add_row(
            entry.timestamp.strftime("%H:%M:%S"),
            entry.action,
            "yes" if entry.success else "no",
            entry.risk_level.value,
            ", ".join(f"{key}={value}" for key, value in entry.details.items()),
            style=style,
        )
    console.print(audit)


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="caseforge configuration validator")
    parser.parse_args()

    try:
        config = CaseForgeConfig.from_env()
    except ValueError as exc:
        console.print(f"Configuration could not be read: {exc}", style="red")
        sys.exit(1)

    issues = validate_config(config)
    if issues:
        console.print("Configuration errors found:", style="red")
        for issue in issues:
            console.print(f"- {issue}", style="red")
        sys.exit(1)
    console.print("Configuration is valid ✅", style="green")

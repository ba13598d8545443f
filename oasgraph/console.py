"""Shared console and report rendering for CLI commands."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from oasgraph.translate.warnings import Report

console = Console()


def truncate(s: str, max_len: int) -> str:
    """Truncate a string to max_len, adding '...' if needed."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def print_report(report: Report) -> None:
    """Print operation counts and the warnings of a build."""
    stats = Table(title="Translation")
    stats.add_column("Operations", style="cyan")
    stats.add_column("Found", justify="right")
    stats.add_column("Created", justify="right")
    stats.add_row("Queries", str(report.num_ops_query), str(report.num_queries_created))
    stats.add_row("Mutations", str(report.num_ops_mutation), str(report.num_mutations_created))
    if report.num_ops_subscription:
        stats.add_row(
            "Subscriptions", str(report.num_ops_subscription), str(report.num_subscriptions_created)
        )
    created = report.num_queries_created + report.num_mutations_created + report.num_subscriptions_created
    stats.add_row("Total", str(report.num_ops), str(created))
    console.print(stats)

    if not report.warnings:
        console.print("[green]No warnings[/green]")
        return

    warnings = Table(title=f"Warnings ({len(report.warnings)})")
    warnings.add_column("Type", style="yellow", no_wrap=True)
    warnings.add_column("Message")
    warnings.add_column("Mitigation", style="dim")
    for w in report.warnings:
        warnings.add_row(w.type, truncate(w.message, 120), w.mitigation)
    console.print(warnings)

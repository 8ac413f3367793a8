#!/usr/bin/env python3
"""
FLEXR CLI.

Progress analytics and weekly summaries from the command line.

Usage:
    flexr progress --user <id> --start 2024-01-01 --end 2024-03-31 --granularity week
    flexr weekly --user <id> --week 2024-03-04          # Generate and store
    flexr weekly --user <id> --show                     # Latest stored summary
    flexr health
"""

import argparse
import json
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import get_settings
from .db.adapters import WorkoutStore, WeeklySummaryRecord, get_store
from .exceptions import FlexrError
from .models.workouts import TYPE_LABELS
from .services.progress_service import ProgressService
from .utils.log_sanitizer import configure_logging

console = Console()


def get_trend_color(trend: str) -> str:
    """Get color for a trend direction."""
    colors = {
        "increasing": "green",
        "stable": "yellow",
        "decreasing": "red",
    }
    return colors.get(trend, "white")


def print_weekly_summary(summary: WeeklySummaryRecord, title: str) -> None:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Week", f"{summary.week_starting} to {summary.week_ending}")
    table.add_row("Planned", str(summary.workouts_planned))
    table.add_row("Completed", str(summary.workouts_completed))
    table.add_row("Duration", f"{summary.total_duration_minutes:.0f} min")
    table.add_row("Distance", f"{summary.total_distance_km:.1f} km")
    readiness = summary.avg_readiness_score
    table.add_row("Avg Readiness", f"{readiness:.1f}" if readiness is not None else "-")
    for workout_type, count in sorted(summary.workout_breakdown.items()):
        table.add_row(f"  {TYPE_LABELS.get(workout_type, workout_type)}", str(count))

    console.print(table)
    console.print()


def cmd_progress(args, service: ProgressService):
    """Show progress metrics."""
    report = service.compute_progress(
        args.user,
        start_date=args.start,
        end_date=args.end,
        granularity=args.granularity,
    )

    if args.json:
        console.print_json(json.dumps(report.to_dict()))
        return

    console.print()
    console.print(Panel("[bold]FLEXR - Progress[/bold]"))
    console.print()

    s = report.summary
    summary_table = Table(title="Summary", box=box.ROUNDED)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", justify="right")
    summary_table.add_row("Workouts", f"{s.completed_workouts}/{s.total_workouts}")
    summary_table.add_row("Completion", f"{s.completion_rate:.1f}%")
    summary_table.add_row("Distance", f"{s.total_distance_km:.1f} km")
    summary_table.add_row("Duration", f"{s.total_duration_minutes:.0f} min")
    summary_table.add_row("Avg Readiness", f"{s.avg_readiness_score:.1f}")
    console.print(summary_table)
    console.print()

    type_table = Table(title="By Type", box=box.ROUNDED)
    type_table.add_column("Type", style="cyan")
    type_table.add_column("Planned", justify="right")
    type_table.add_column("Completed", justify="right")
    type_table.add_column("Rate", justify="right")
    type_table.add_column("Duration", justify="right")
    for workout_type, b in report.by_type.items():
        type_table.add_row(
            TYPE_LABELS.get(workout_type, workout_type),
            str(b.planned),
            str(b.completed),
            f"{b.completion_rate:.0f}%",
            f"{b.total_duration:.0f} min",
        )
    console.print(type_table)
    console.print()

    if report.timeline:
        timeline_table = Table(title=f"Timeline ({report.granularity})", box=box.SIMPLE)
        timeline_table.add_column("Period", style="cyan")
        timeline_table.add_column("Workouts", justify="right")
        timeline_table.add_column("Distance", justify="right")
        timeline_table.add_column("Duration", justify="right")
        for bucket in report.timeline:
            timeline_table.add_row(
                bucket.period,
                str(bucket.workouts),
                f"{bucket.distance:.1f} km",
                f"{bucket.duration:.0f} min",
            )
        console.print(timeline_table)
        console.print()
    else:
        console.print("[yellow]No completed workouts in this window.[/yellow]")
        console.print()

    t = report.trends
    for label, trend in (
        ("Frequency", t.workout_frequency),
        ("Distance", t.distance_trend),
        ("Readiness", t.readiness_trend),
    ):
        color = get_trend_color(trend)
        console.print(f"{label}: [{color}]{trend}[/{color}]")
    console.print()


def cmd_weekly(args, service: ProgressService):
    """Generate or show a weekly summary."""
    console.print()
    if args.show:
        summary = service.get_weekly_summary(args.user, args.week)
        print_weekly_summary(summary, "Weekly Summary")
        return

    if not args.week:
        console.print("[red]--week is required unless --show is given[/red]")
        sys.exit(2)

    summary = service.generate_weekly_summary(args.user, args.week)
    console.print("[green]Weekly summary saved.[/green]")
    print_weekly_summary(summary, "Weekly Summary")


def cmd_health(args, store: WorkoutStore):
    """Check the configured store."""
    health = store.health_check()
    color = "green" if health.get("healthy") else "red"
    console.print(f"[{color}]{health.get('backend')}: "
                  f"{'healthy' if health.get('healthy') else 'unhealthy'}[/{color}] "
                  f"({health.get('latency_ms')} ms)")
    if health.get("error"):
        console.print(f"[red]{health['error']}[/red]")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flexr",
        description="FLEXR - training progress analytics",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    progress_parser = subparsers.add_parser("progress", help="Show progress metrics")
    progress_parser.add_argument("--user", required=True, help="User id")
    progress_parser.add_argument("--start", default=None, help="Start date (YYYY-MM-DD)")
    progress_parser.add_argument("--end", default=None, help="End date, inclusive (YYYY-MM-DD)")
    progress_parser.add_argument(
        "--granularity", choices=["day", "week", "month"], default="week",
        help="Timeline bucket size",
    )
    progress_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    weekly_parser = subparsers.add_parser("weekly", help="Generate or show a weekly summary")
    weekly_parser.add_argument("--user", required=True, help="User id")
    weekly_parser.add_argument("--week", default=None, help="Week start (YYYY-MM-DD)")
    weekly_parser.add_argument(
        "--show", action="store_true",
        help="Show the stored summary instead of generating it",
    )

    subparsers.add_parser("health", help="Check the database connection")
    return parser


def main(argv: Optional[list] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command is None:
        parser.print_help()
        return

    store = get_store(settings)
    service = ProgressService(store, default_window_days=settings.progress_default_days)

    try:
        if args.command == "progress":
            cmd_progress(args, service)
        elif args.command == "weekly":
            cmd_weekly(args, service)
        elif args.command == "health":
            cmd_health(args, store)
        else:
            parser.print_help()
    except FlexrError as e:
        console.print(f"[red]{e.code.value}: {e.message}[/red]")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()

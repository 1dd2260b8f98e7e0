"""
Status command: per-stage state and file presence.
"""

from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from sovchain.stages import pipeline_status
from .common import console, build_config, emit_json, tick


def status_command(
    workdir: Optional[str] = typer.Option(
        None,
        "--workdir",
        "-w",
        help="Working root for artifacts and checkpoints (default: $SOVCHAIN_WORKDIR or cwd)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show the state of every stage and whether its files are present.

    Exits 1 when a completed stage is missing files or has issues.
    """
    config = build_config(verbose, workdir=workdir)
    statuses = pipeline_status(config)
    healthy = all(s.healthy for s in statuses)

    if json_output:
        emit_json({"ok": healthy, "workdir": config.workdir, "stages": [s.to_dict() for s in statuses]})
    else:
        table = Table(title=f"Pipeline status ({config.workdir})")
        table.add_column("Stage", style="cyan")
        table.add_column("State")
        table.add_column("Created")
        table.add_column("Files")
        table.add_column("Verified")
        for s in statuses:
            files = ", ".join(f"{name} {tick(present)}" for name, present in s.files.items()) or "-"
            verified = ", ".join(tick(v) for v in s.verified.values()) or "-"
            table.add_row(s.stage, s.state, s.created_at or "-", files, verified)
        console.print(table)
        for s in statuses:
            for issue in s.issues:
                console.print(f"[red]✗ {s.stage}: {escape(issue)}[/red]")

    if not healthy:
        raise typer.Exit(1)

"""
Rollback command: remove what a stage created.
"""

from typing import Optional

import typer
from rich.table import Table

from sovchain.core.errors import ChainError
from sovchain.core.units import human_size
from sovchain.rollback import RollbackManager, RollbackMode
from sovchain.stages import STAGES
from .common import console, build_config, fail, emit_json


def rollback_command(
    stage: str = typer.Argument(..., help=f"Stage to roll back ({', '.join(STAGES)})"),
    workdir: Optional[str] = typer.Option(
        None,
        "--workdir",
        "-w",
        help="Working root for artifacts and checkpoints (default: $SOVCHAIN_WORKDIR or cwd)",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Remove without confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be removed"),
    remove_keys: bool = typer.Option(
        False,
        "--remove-gpg-keys",
        help="Also remove the imported trusted signing keys",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Roll back a stage: remove its artifacts, sibling files and checkpoint.

    Examples:
        sovchain rollback download-host --dry-run
        sovchain rollback gpg-verify-host --force --remove-gpg-keys
    """
    if stage not in STAGES:
        fail(f"Unknown stage {stage!r} (expected one of: {', '.join(STAGES)})", json_output)
        raise typer.Exit(1)
    if force and dry_run:
        fail("--force and --dry-run are mutually exclusive", json_output)
        raise typer.Exit(1)

    config = build_config(verbose, workdir=workdir, force=force, dry_run=dry_run, remove_keys=remove_keys)

    try:
        manager = RollbackManager(config, confirm=lambda prompt: typer.confirm(prompt, default=False))
        report = manager.rollback(stage)
    except ChainError as e:
        fail(str(e), json_output, stage=stage)
        raise typer.Exit(1)

    if json_output:
        emit_json({"ok": report.ok, **report.to_dict()})
    else:
        table = Table(title=f"Rollback {stage} ({report.mode})", show_header=False)
        for key, count in report.counts.items():
            table.add_row(key.replace("_", " "), str(count))
        table.add_row("freed", human_size(report.bytes_freed))
        console.print(table)
        for path in report.would_remove:
            console.print(f"  would remove: {path}")
        for path in report.orphans:
            console.print(f"[yellow]  orphaned: {path}[/yellow]")
        if report.mode == RollbackMode.DRY_RUN:
            console.print("[yellow]Dry run: nothing was removed[/yellow]")
        elif report.ok:
            console.print(f"[green]✓ {stage} rolled back[/green]")
        else:
            console.print(f"[red]✗ {len(report.failed)} removal(s) failed[/red]")

    if not report.ok:
        raise typer.Exit(1)

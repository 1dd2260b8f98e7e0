"""
Download command: run the download-host stage.
"""

from typing import Optional

import typer
from rich.table import Table

from sovchain.core.errors import ChainError
from sovchain.stages import DownloadStage
from .common import console, build_config, fail, emit_json, artifact_rows, tick


def download_command(
    workdir: Optional[str] = typer.Option(
        None,
        "--workdir",
        "-w",
        help="Working root for artifacts and checkpoints (default: $SOVCHAIN_WORKDIR or cwd)",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="Mirror directory to discover the image in",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Continue when no manifest lists the image (recorded as unverified)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Discover, download and checksum-verify the latest image.

    Examples:
        sovchain download
        sovchain download --workdir /srv/isos
        sovchain download --force --json
    """
    config = build_config(verbose, workdir=workdir, base_url=base_url, force=force)
    stage = DownloadStage(config)

    try:
        checkpoint = stage.run()
    except ChainError as e:
        fail(str(e), json_output, stage=stage.name, state=stage.state)
        raise typer.Exit(1)

    if json_output:
        emit_json({"ok": True, "stage": stage.name, "state": stage.state, "checkpoint": checkpoint.to_dict()})
        return

    table = Table(title=f"{stage.name} checkpoint")
    table.add_column("Artifact", style="cyan")
    table.add_column("Version")
    table.add_column("Size", justify="right")
    table.add_column("Manifest")
    table.add_column("Verified")
    for name, version, size, manifest, verified in artifact_rows(checkpoint):
        table.add_row(name, version, str(size), manifest, tick(verified))
    console.print(table)
    console.print(f"[green]✓ {stage.name} completed[/green]")

#!/usr/bin/env python3
"""
Sovereignty Chain CLI - verified acquisition of installation images

Main entrypoint for the sovchain command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from sovchain_cli.commands import download, gpg_verify, rollback, status

# Initialize Typer app
app = typer.Typer(
    name="sovchain",
    help="Checkpoint-driven download and verification of installation images",
    add_completion=False,
)

# Console for rich output
console = Console()

app.command("download")(download.download_command)
app.command("gpg-verify")(gpg_verify.gpg_verify_command)
app.command("rollback")(rollback.rollback_command)
app.command("status")(status.status_command)


@app.command()
def version():
    """Show version information."""
    from sovchain_cli import __version__
    from sovchain.checkpoint import CHECKPOINT_SCHEMA_VERSION
    from sovchain.stages import STAGES

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Sovereignty Chain[/bold]", f"v{__version__}")
    table.add_row("Checkpoint schema", str(CHECKPOINT_SCHEMA_VERSION))
    table.add_row("Stages", " -> ".join(STAGES))

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()

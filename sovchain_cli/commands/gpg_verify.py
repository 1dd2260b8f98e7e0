"""
GPG verify command: run the gpg-verify-host stage.
"""

from typing import List, Optional

import typer

from sovchain.core.errors import ChainError
from sovchain.stages import SignatureStage
from sovchain.verify import SignatureStatus
from .common import console, build_config, fail, emit_json


def gpg_verify_command(
    workdir: Optional[str] = typer.Option(
        None,
        "--workdir",
        "-w",
        help="Working root for artifacts and checkpoints (default: $SOVCHAIN_WORKDIR or cwd)",
    ),
    skip_gpg: bool = typer.Option(
        False,
        "--no-gpg",
        "--skip-gpg",
        help="Skip signature verification (recorded as skipped)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Continue even if some verifications fail (true status is recorded)",
    ),
    keyserver: Optional[List[str]] = typer.Option(
        None,
        "--keyserver",
        "-k",
        help="Keyserver to import trusted keys from (repeatable, tried in order)",
    ),
    gnupg_home: Optional[str] = typer.Option(
        None,
        "--gnupg-home",
        help="Isolated gpg home directory",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify the image checksum and the manifest's detached signature.

    Examples:
        sovchain gpg-verify
        sovchain gpg-verify --no-gpg
        sovchain gpg-verify --keyserver keys.openpgp.org --gnupg-home /tmp/gnupg
    """
    config = build_config(
        verbose,
        workdir=workdir,
        skip_gpg=skip_gpg,
        force=force,
        keyservers=tuple(keyserver) if keyserver else None,
        gnupg_home=gnupg_home,
    )
    stage = SignatureStage(config)

    try:
        checkpoint = stage.run()
    except ChainError as e:
        fail(str(e), json_output, stage=stage.name, state=stage.state)
        raise typer.Exit(1)

    verification = checkpoint.verification
    if json_output:
        emit_json({"ok": True, "stage": stage.name, "state": stage.state, "checkpoint": checkpoint.to_dict()})
        return

    for name, rec in checkpoint.artifacts.items():
        console.print(f"Artifact: [cyan]{name}[/cyan] verified={rec.verified}")
    if verification.status == SignatureStatus.GOOD:
        console.print(f"[green]✓ GPG verification PASSED[/green] (key {verification.signing_key or 'unknown'})")
    elif verification.status == SignatureStatus.SKIPPED:
        console.print("[yellow]GPG verification SKIPPED[/yellow]")
    else:
        console.print(f"[yellow]GPG verification FAILED ({verification.status}), continued by --force[/yellow]")
    console.print(f"[green]✓ {stage.name} completed[/green]")

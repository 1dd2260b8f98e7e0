"""
Shared helpers for command implementations.
"""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

from sovchain.core.config import PipelineConfig
from sovchain.logging_config import setup_logging

console = Console()


def build_config(verbose: bool = False, **overrides: Any) -> PipelineConfig:
    """Configure logging and build the pipeline config from env + flags."""
    setup_logging(level="DEBUG" if verbose else None)
    return PipelineConfig.from_env(verbose=verbose, **overrides)


def fail(message: str, json_output: bool = False, **extra: Any) -> None:
    if json_output:
        print(json.dumps({"ok": False, "error": message, **extra}))
    else:
        console.print(f"[red]✗ {escape(message)}[/red]")


def emit_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def artifact_rows(checkpoint) -> list:
    return [
        (name, rec.version, rec.size_bytes, rec.checksum_file or "-", rec.verified)
        for name, rec in checkpoint.artifacts.items()
    ]


def tick(flag: Optional[bool]) -> str:
    return "[green]yes[/green]" if flag else "[red]no[/red]"

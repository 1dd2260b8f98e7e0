"""
Checkpoint storage management.

Checkpoints are stored as one JSON file per completed stage in the working
root. Naming: {stage}.checkpoint.json

Writes are atomic: a temp file in the same directory is fsynced and then
renamed over the final name, so readers never observe a partial document.
"""

import copy
import logging
import os
import socket
import tempfile
from pathlib import Path
from typing import Optional, Union

from .model import Checkpoint, StageResult, CHECKPOINT_SCHEMA_VERSION
from .verify import validate_checkpoint
from .. import __version__
from ..core.clock import UtcClock
from ..core.errors import (
    CheckpointCorrupt,
    CheckpointNotFound,
    CheckpointWriteError,
    SchemaVersionMismatch,
)

logger = logging.getLogger(__name__)

CHECKPOINT_SUFFIX = ".checkpoint.json"

PathLike = Union[str, Path]


def _atomic_write_text(path: Path, text: str) -> None:
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    # Persist the rename itself.
    dir_fd = os.open(str(path.parent), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


class CheckpointStore:
    """
    Read, write and validate stage checkpoints in one working root.

    Storage format:
    - {workdir}/{stage}.checkpoint.json
    - Contents: Checkpoint JSON (schema_version 1)
    """

    def __init__(self, directory: PathLike = ".", clock=None, hostname: Optional[str] = None,
                 script_version: Optional[str] = None):
        """
        Initialize checkpoint store.

        Args:
            directory: Working root holding checkpoints
            clock: Timestamp source (default: UtcClock)
            hostname: Host recorded in checkpoints (default: this host)
            script_version: Version recorded in checkpoints (default: package version)
        """
        self.directory = Path(directory)
        self.clock = clock or UtcClock()
        self.hostname = hostname or socket.gethostname()
        self.script_version = script_version or __version__

    def path_for(self, stage: str) -> Path:
        """Checkpoint path of a stage."""
        return self.directory / f"{stage}{CHECKPOINT_SUFFIX}"

    def exists(self, stage: str) -> bool:
        return self.path_for(stage).is_file()

    def load(self, path: PathLike, strict: bool = False) -> Checkpoint:
        """
        Load and validate a checkpoint.

        A schema_version mismatch is always logged; in strict mode it is
        also raised.

        Args:
            path: Path to checkpoint file
            strict: Raise SchemaVersionMismatch instead of only warning

        Returns:
            Checkpoint instance

        Raises:
            CheckpointNotFound: File does not exist
            CheckpointCorrupt: File is not a valid checkpoint document
            SchemaVersionMismatch: Unsupported schema (strict mode only)
        """
        path = Path(path)
        if not path.is_file():
            raise CheckpointNotFound(f"checkpoint not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                checkpoint = Checkpoint.from_json(f.read())
        except (ValueError, KeyError, TypeError, AttributeError) as ex:
            raise CheckpointCorrupt(f"invalid checkpoint {path}: {ex}") from ex

        result = validate_checkpoint(checkpoint)
        if not result.schema_valid:
            logger.warning(
                "Checkpoint %s has schema_version %r, expected %d",
                path, checkpoint.schema_version, CHECKPOINT_SCHEMA_VERSION,
            )
            if strict:
                raise SchemaVersionMismatch(
                    f"unsupported schema_version {checkpoint.schema_version!r} in {path.name}",
                    stage=checkpoint.step,
                )
        field_issues = result.issues if result.schema_valid else result.issues[1:]
        for issue in field_issues:
            logger.warning("Checkpoint %s: %s", path.name, issue)
        return checkpoint

    def load_stage(self, stage: str, strict: bool = False) -> Checkpoint:
        """Load the checkpoint of a stage by name."""
        return self.load(self.path_for(stage), strict=strict)

    def save(self, path: PathLike, previous: Optional[Checkpoint], stage_result: StageResult) -> Checkpoint:
        """
        Write a stage's checkpoint.

        Artifacts are taken from previous (deep copy, unchanged) when given,
        otherwise from the stage result. The verified flag of every artifact
        becomes previous OR stage_result.verified, so trust never regresses.

        Args:
            path: Destination checkpoint file
            previous: Checkpoint of the preceding stage, or None
            stage_result: Outcome of this stage

        Returns:
            The checkpoint that was written
        """
        path = Path(path)
        if previous is not None:
            artifacts = copy.deepcopy(previous.artifacts)
            for name, rec in stage_result.artifacts.items():
                artifacts.setdefault(name, copy.deepcopy(rec))
            for rec in artifacts.values():
                rec.verified = bool(rec.verified or stage_result.verified)
        else:
            artifacts = copy.deepcopy(stage_result.artifacts)

        checkpoint = Checkpoint(
            schema_version=CHECKPOINT_SCHEMA_VERSION,
            step=stage_result.step,
            step_number=stage_result.step_number,
            script_version=self.script_version,
            created_at=self.clock.timestamp(),
            hostname=self.hostname,
            previous_step=previous.step if previous is not None else stage_result.previous_step,
            metadata=dict(stage_result.metadata),
            artifacts=artifacts,
            verification=copy.deepcopy(stage_result.verification),
        )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write_text(path, checkpoint.to_json())
        except OSError as ex:
            raise CheckpointWriteError(
                f"failed to write checkpoint {path}: {ex}", stage=stage_result.step
            ) from ex

        logger.info("Checkpoint saved: %s", path)
        return checkpoint

    def locate_artifact(self, checkpoint: Checkpoint, name: str) -> Optional[Path]:
        """
        Find an artifact on disk.

        Probes the working root first, then the absolute location recorded
        in the checkpoint.

        Returns:
            Path of the first existing candidate, or None
        """
        candidates = [self.directory / name]
        rec = checkpoint.artifacts.get(name)
        if rec is not None and rec.location:
            candidates.append(Path(rec.location) / name)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None

    def delete(self, path: PathLike) -> None:
        """
        Delete checkpoint file.

        Args:
            path: Path to checkpoint file
        """
        os.remove(path)

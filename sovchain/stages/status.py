"""
Stage status inspection.

Derives each stage's state from the filesystem: a held lock means
RUNNING, a checkpoint means COMPLETED, neither means NOT_STARTED. For
completed stages the files the checkpoint refers to are checked for
presence.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .base import STAGES, StageState, DOWNLOAD_STAGE
from ..checkpoint import CheckpointStore, CHECKPOINT_SCHEMA_VERSION
from ..core.errors import CheckpointCorrupt
from ..core.lock import is_locked


@dataclass
class StageStatus:
    """
    Observed state of one stage.

    Fields:
        stage: Stage name
        state: One of StageState
        checkpoint: Checkpoint path (when present)
        created_at: Checkpoint timestamp
        files: Expected file -> present on disk
        verified: Artifact name -> verified flag
        issues: Problems found while inspecting
    """
    stage: str
    state: str
    checkpoint: Optional[str] = None
    created_at: Optional[str] = None
    files: Dict[str, bool] = field(default_factory=dict)
    verified: Dict[str, bool] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.issues and all(self.files.values())

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "state": self.state,
            "checkpoint": self.checkpoint,
            "created_at": self.created_at,
            "files": self.files,
            "verified": self.verified,
            "issues": self.issues,
            "healthy": self.healthy,
        }


def stage_status(config, stage: str, store: Optional[CheckpointStore] = None) -> StageStatus:
    """Inspect one stage in the configured working root."""
    store = store or CheckpointStore(config.workdir)
    if is_locked(config.workdir, stage):
        return StageStatus(stage=stage, state=StageState.RUNNING)

    path = store.path_for(stage)
    if not path.is_file():
        return StageStatus(stage=stage, state=StageState.NOT_STARTED)

    status = StageStatus(stage=stage, state=StageState.COMPLETED, checkpoint=str(path))
    try:
        checkpoint = store.load(path)
    except CheckpointCorrupt as ex:
        status.issues.append(str(ex))
        return status

    status.created_at = checkpoint.created_at
    for name, record in checkpoint.artifacts.items():
        status.files[name] = store.locate_artifact(checkpoint, name) is not None
        status.verified[name] = record.verified
        if stage == DOWNLOAD_STAGE and record.checksum_file:
            manifest = config.workpath / record.checksum_file
            status.files[record.checksum_file] = manifest.is_file()
    if checkpoint.schema_version != CHECKPOINT_SCHEMA_VERSION:
        status.issues.append(f"unsupported schema_version {checkpoint.schema_version!r}")
    return status


def pipeline_status(config, store: Optional[CheckpointStore] = None) -> List[StageStatus]:
    """Status of every stage, in pipeline order."""
    store = store or CheckpointStore(config.workdir)
    return [stage_status(config, stage, store) for stage in STAGES]

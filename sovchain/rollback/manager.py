"""
Stage rollback.

Reverses exactly what one stage created, driven by its checkpoint:
1. Artifacts the stage produced (first stage only; later stages only
   forward them)
2. Well-known sibling files of the stage (manifests and signatures)
3. The checkpoint itself, last, and only if nothing before it failed

Imported trusted keys are removed only on explicit request. A stage with
no checkpoint rolls back to an all-zero report, which makes a second
rollback a no-op.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..checkpoint import CheckpointStore
from ..core.errors import CheckpointCorrupt, CheckpointNotFound, DependencyMissing
from ..core.units import human_size
from ..stages.base import DOWNLOAD_STAGE, SIGNATURE_STAGE, STAGES
from ..verify.gpg import Gpg

logger = logging.getLogger(__name__)

STAGE_SIBLINGS = {
    DOWNLOAD_STAGE: ("SHA256SUMS", "SHA256SUMS.sign", "SHA512SUMS", "SHA512SUMS.sign"),
    SIGNATURE_STAGE: (),
}

# Stages that import trusted keys into the keyring.
KEY_STAGES = (SIGNATURE_STAGE,)


class RollbackMode:
    FORCE = "force"
    DRY_RUN = "dry-run"
    INTERACTIVE = "interactive"


def mode_for(config) -> str:
    """
    Rollback mode selected by config (exactly one per invocation).

    Raises:
        ValueError: both dry_run and force are set
    """
    if config.dry_run and config.force:
        raise ValueError("--dry-run and --force are mutually exclusive")
    if config.dry_run:
        return RollbackMode.DRY_RUN
    if config.force:
        return RollbackMode.FORCE
    return RollbackMode.INTERACTIVE


@dataclass
class RollbackReport:
    """
    Outcome of a rollback.

    Fields:
        stage: Stage rolled back
        mode: RollbackMode value
        removed: Paths deleted
        skipped: Paths kept (declined or blocked by an earlier failure)
        failed: Paths that could not be deleted
        not_found: Candidates absent on disk
        would_remove: Paths a dry run would delete
        keys_removed: Key ids deleted from the keyring
        bytes_freed: Bytes released by removals
        orphans: Files present without a checkpoint (hint only)
    """
    stage: str
    mode: str
    removed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)
    would_remove: List[str] = field(default_factory=list)
    keys_removed: List[str] = field(default_factory=list)
    bytes_freed: int = 0
    orphans: List[str] = field(default_factory=list)

    @property
    def counts(self) -> dict:
        return {
            "removed": len(self.removed),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "not_found": len(self.not_found),
            "would_remove": len(self.would_remove),
            "keys_removed": len(self.keys_removed),
        }

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "mode": self.mode,
            "counts": self.counts,
            "removed": self.removed,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_found": self.not_found,
            "would_remove": self.would_remove,
            "keys_removed": self.keys_removed,
            "bytes_freed": self.bytes_freed,
            "orphans": self.orphans,
        }


class RollbackManager:
    """
    Remove what a stage created.

    Args:
        config: PipelineConfig (workdir, force, dry_run, remove_keys, trusted_keys)
        store: CheckpointStore for the working root
        confirm: Callable(prompt) -> bool, required for interactive mode
        gpg: Gpg backend used for key removal
    """

    def __init__(self, config, store: Optional[CheckpointStore] = None,
                 confirm: Optional[Callable[[str], bool]] = None, gpg: Optional[Gpg] = None):
        self.config = config
        self.store = store or CheckpointStore(config.workdir)
        self.mode = mode_for(config)
        if self.mode == RollbackMode.INTERACTIVE and confirm is None:
            raise ValueError("interactive rollback requires a confirm callback")
        self.confirm = confirm
        self.gpg = gpg or Gpg.from_config(config)

    def candidates(self, stage: str) -> List[Path]:
        """
        Files the stage's rollback would consider, checkpoint last.

        Raises:
            CheckpointNotFound: stage has no checkpoint
            CheckpointCorrupt: checkpoint cannot be parsed
        """
        checkpoint = self.store.load_stage(stage, strict=False)
        paths: List[Path] = []
        if checkpoint.previous_step is None:
            for name in checkpoint.artifacts:
                located = self.store.locate_artifact(checkpoint, name)
                paths.append(located if located is not None else self.config.workpath / name)
        paths.extend(self.stage_files(stage))

        unique: List[Path] = []
        for path in paths:
            if path not in unique:
                unique.append(path)
        return unique

    def stage_files(self, stage: str) -> List[Path]:
        """Sibling files plus checkpoint; used when the checkpoint is unreadable."""
        paths = [self.config.workpath / sibling for sibling in STAGE_SIBLINGS.get(stage, ())]
        paths.append(self.store.path_for(stage))
        return paths

    def _orphans(self, stage: str) -> List[str]:
        return [
            str(self.config.workpath / name)
            for name in STAGE_SIBLINGS.get(stage, ())
            if (self.config.workpath / name).exists()
        ]

    def _remove(self, path: Path, report: RollbackReport, blocked: bool = False,
                delete: Callable = os.remove) -> None:
        if not path.exists():
            logger.debug("Not found: %s", path)
            report.not_found.append(str(path))
            return

        size = path.stat().st_size
        if self.mode == RollbackMode.DRY_RUN:
            logger.info("[DRY RUN] Would remove: %s (%s)", path, human_size(size))
            report.would_remove.append(str(path))
            return
        if blocked:
            logger.warning("Keeping %s because earlier removals failed", path)
            report.skipped.append(str(path))
            return
        if self.mode == RollbackMode.INTERACTIVE and not self.confirm(f"Remove {path}?"):
            logger.info("Skipped: %s", path)
            report.skipped.append(str(path))
            return

        try:
            delete(path)
        except OSError as ex:
            logger.error("Failed to remove %s: %s", path, ex)
            report.failed.append(str(path))
            return
        logger.info("Removed: %s", path)
        report.removed.append(str(path))
        report.bytes_freed += size

    def _remove_keys(self, report: RollbackReport) -> None:
        if not self.gpg.available():
            logger.warning("Cannot remove GPG keys - gpg not installed")
            return
        for key_id in self.config.trusted_keys:
            try:
                present = self.gpg.has_key(key_id)
            except DependencyMissing as ex:
                logger.warning("Cannot remove GPG keys: %s", ex)
                return
            if not present:
                logger.debug("GPG key %s not in keyring", key_id)
                continue
            label = f"gpg-key:{key_id}"
            if self.mode == RollbackMode.DRY_RUN:
                logger.info("[DRY RUN] Would remove GPG key: %s", key_id)
                report.would_remove.append(label)
            elif self.mode == RollbackMode.INTERACTIVE and not self.confirm(f"Remove GPG key {key_id}?"):
                report.skipped.append(label)
            elif self.gpg.delete_key(key_id):
                logger.info("Removed GPG key: %s", key_id)
                report.keys_removed.append(key_id)
            else:
                report.failed.append(label)

    def rollback(self, stage: str) -> RollbackReport:
        """
        Roll back one stage.

        Args:
            stage: Stage name

        Returns:
            RollbackReport (all zero when the stage has no checkpoint)
        """
        if stage not in STAGES:
            raise ValueError(f"unknown stage {stage!r}; expected one of {', '.join(STAGES)}")

        report = RollbackReport(stage=stage, mode=self.mode)
        try:
            paths = self.candidates(stage)
        except CheckpointNotFound:
            report.orphans = self._orphans(stage)
            logger.info("No checkpoint for %s; nothing to roll back", stage)
            for orphan in report.orphans:
                logger.warning("Orphaned file without checkpoint: %s", orphan)
            return report
        except CheckpointCorrupt as ex:
            logger.warning("Could not validate checkpoint of %s: %s", stage, ex)
            paths = self.stage_files(stage)

        downstream = STAGES[STAGES.index(stage) + 1:]
        for later in downstream:
            if self.store.exists(later):
                logger.warning("%s still has a checkpoint and depends on %s", later, stage)

        checkpoint_path = paths[-1]
        for path in paths[:-1]:
            self._remove(path, report)
        self._remove(checkpoint_path, report, blocked=bool(report.failed), delete=self.store.delete)

        if self.config.remove_keys:
            if stage in KEY_STAGES:
                self._remove_keys(report)
            else:
                logger.warning("%s imports no keys; --remove-gpg-keys ignored", stage)

        logger.info(
            "Rollback of %s (%s): removed=%d skipped=%d failed=%d not_found=%d freed=%s",
            stage, self.mode, len(report.removed), len(report.skipped), len(report.failed),
            len(report.not_found), human_size(report.bytes_freed),
        )
        return report

"""
Stage runner and per-stage state machine.

    NOT_STARTED -> RUNNING -> COMPLETED   (checkpoint written)
                           -> FAILED      (no checkpoint)
    COMPLETED   -> NOT_STARTED            (rollback)
"""

import logging
from typing import Optional

from ..checkpoint import Checkpoint, CheckpointStore
from ..core.config import PipelineConfig
from ..core.errors import ChainError, CheckpointNotFound
from ..core.lock import StageLock
from ..logging_config import get_logger

DOWNLOAD_STAGE = "download-host"
SIGNATURE_STAGE = "gpg-verify-host"

# Pipeline order; position + 1 is the step_number.
STAGES = (DOWNLOAD_STAGE, SIGNATURE_STAGE)


class StageState:
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def step_number(stage: str) -> int:
    return STAGES.index(stage) + 1


def previous_stage(stage: str) -> Optional[str]:
    index = STAGES.index(stage)
    return STAGES[index - 1] if index > 0 else None


class Stage:
    """
    Base class for a pipeline stage.

    Subclasses implement execute(), which does the stage's work and returns
    the checkpoint it saved. run() wraps it with the stage lock and the
    state transitions.
    """

    name = ""

    def __init__(self, config: PipelineConfig, store: Optional[CheckpointStore] = None):
        self.config = config
        self.store = store or CheckpointStore(config.workdir)
        self.state = StageState.NOT_STARTED
        self.log = get_logger(f"{__package__}.{self.name}", trace_id=self.name)

    @property
    def step_number(self) -> int:
        return step_number(self.name)

    @property
    def previous_step(self) -> Optional[str]:
        return previous_stage(self.name)

    def load_previous(self) -> Checkpoint:
        """
        Load the preceding stage's checkpoint.

        Loaded strictly (schema mismatch raises) unless force is set.

        Raises:
            CheckpointNotFound: preceding stage has not completed
        """
        previous = self.previous_step
        try:
            return self.store.load_stage(previous, strict=not self.config.force)
        except CheckpointNotFound as ex:
            raise CheckpointNotFound(
                f"{previous} has not completed; run it first", stage=self.name
            ) from ex

    def execute(self) -> Checkpoint:
        raise NotImplementedError

    def run(self) -> Checkpoint:
        """
        Run the stage under its lock.

        Returns:
            The checkpoint written by the stage

        Raises:
            ChainError: the stage failed (no checkpoint written)
        """
        with StageLock(self.config.workdir, self.name):
            self.state = StageState.RUNNING
            self.log.info("Stage %s started", self.name)
            try:
                checkpoint = self.execute()
            except ChainError as ex:
                self.state = StageState.FAILED
                if ex.stage is None:
                    ex.stage = self.name
                self.log.error("Stage %s failed: %s", self.name, ex)
                raise
            self.state = StageState.COMPLETED
            self.log.info("Stage %s completed", self.name)
            return checkpoint

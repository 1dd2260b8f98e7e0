"""
Pipeline stages: download-host and gpg-verify-host, plus status inspection.
"""

from .base import (
    Stage,
    StageState,
    STAGES,
    DOWNLOAD_STAGE,
    SIGNATURE_STAGE,
    step_number,
    previous_stage,
)
from .download import DownloadStage
from .signature import SignatureStage
from .status import StageStatus, stage_status, pipeline_status

STAGE_CLASSES = {
    DOWNLOAD_STAGE: DownloadStage,
    SIGNATURE_STAGE: SignatureStage,
}

__all__ = [
    "Stage",
    "StageState",
    "STAGES",
    "DOWNLOAD_STAGE",
    "SIGNATURE_STAGE",
    "STAGE_CLASSES",
    "step_number",
    "previous_stage",
    "DownloadStage",
    "SignatureStage",
    "StageStatus",
    "stage_status",
    "pipeline_status",
]

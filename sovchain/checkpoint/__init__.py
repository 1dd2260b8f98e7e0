"""
Checkpoint system for per-stage pipeline state.

Provides:
- Checkpoint model with versioned serialization
- Atomic checkpoint storage with monotonic trust forwarding
- Schema and field validation
"""

from .model import (
    Checkpoint,
    ArtifactRecord,
    VerificationBlock,
    StageResult,
    CHECKPOINT_SCHEMA_VERSION,
)
from .verify import validate_checkpoint, verify_monotonic, same_content, ValidationResult
from .store import CheckpointStore, CHECKPOINT_SUFFIX

__all__ = [
    "Checkpoint",
    "ArtifactRecord",
    "VerificationBlock",
    "StageResult",
    "CHECKPOINT_SCHEMA_VERSION",
    "validate_checkpoint",
    "verify_monotonic",
    "same_content",
    "ValidationResult",
    "CheckpointStore",
    "CHECKPOINT_SUFFIX",
]

"""
Core primitives: configuration, errors, clock, canonical serialization,
stage locking.
"""

from .config import PipelineConfig
from .clock import UtcClock, FixedClock, format_timestamp
from .canonical import canonicalize, canonical_json_bytes, content_digest
from .lock import StageLock, is_locked
from .units import human_size
from .errors import (
    ChainError,
    DependencyMissing,
    DiscoveryError,
    NetworkError,
    SizeMismatch,
    ChecksumMismatch,
    ManifestNotFound,
    SignatureMissing,
    SignatureInvalid,
    SchemaVersionMismatch,
    CheckpointNotFound,
    CheckpointCorrupt,
    CheckpointWriteError,
    ArtifactNotFound,
    StageLocked,
)

__all__ = [
    "PipelineConfig",
    "UtcClock",
    "FixedClock",
    "format_timestamp",
    "canonicalize",
    "canonical_json_bytes",
    "content_digest",
    "StageLock",
    "is_locked",
    "human_size",
    "ChainError",
    "DependencyMissing",
    "DiscoveryError",
    "NetworkError",
    "SizeMismatch",
    "ChecksumMismatch",
    "ManifestNotFound",
    "SignatureMissing",
    "SignatureInvalid",
    "SchemaVersionMismatch",
    "CheckpointNotFound",
    "CheckpointCorrupt",
    "CheckpointWriteError",
    "ArtifactNotFound",
    "StageLocked",
]

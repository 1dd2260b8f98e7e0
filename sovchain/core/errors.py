"""
Exception types for the verification pipeline.

Every error carries optional ``stage`` and ``artifact`` context so that a
reported failure always names what failed and where.
"""

from typing import Optional


class ChainError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, stage: Optional[str] = None, artifact: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.artifact = artifact

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.artifact:
            context.append(f"artifact={self.artifact}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class DependencyMissing(ChainError):
    """Raised when a required external tool (gpg) is not installed."""
    pass


class DiscoveryError(ChainError):
    """Raised when the listing is unreachable or no artifact matches."""
    pass


class NetworkError(ChainError):
    """Raised when a transfer fails or times out."""
    pass


class SizeMismatch(ChainError):
    """Raised when a local file disagrees with the remote Content-Length."""
    pass


class ChecksumMismatch(ChainError):
    """Raised when the computed digest differs from the manifest entry."""
    pass


class ManifestNotFound(ChainError):
    """Raised when no manifest lists the artifact."""
    pass


class SignatureMissing(ChainError):
    """Raised when the detached signature file is absent."""
    pass


class SignatureInvalid(ChainError):
    """Raised when the detached signature does not verify against a trusted key."""
    pass


class SchemaVersionMismatch(ChainError):
    """Raised when a checkpoint carries an unsupported schema_version."""
    pass


class CheckpointNotFound(ChainError):
    """Raised when the checkpoint of a required stage does not exist."""
    pass


class CheckpointCorrupt(ChainError):
    """Raised when a checkpoint file cannot be parsed."""
    pass


class CheckpointWriteError(ChainError):
    """Raised when a checkpoint cannot be written to disk."""
    pass


class ArtifactNotFound(ChainError):
    """Raised when an artifact recorded in a checkpoint cannot be located."""
    pass


class StageLocked(ChainError):
    """Raised when another process is already running the same stage."""
    pass

"""
Checkpoint model for per-stage pipeline state.

A checkpoint captures:
- Provenance of the stage run (step, host, time, predecessor)
- Every artifact produced or carried forward, with digests and trust flag
- The signature verification outcome (from the signature stage onward)

Unknown keys found in a loaded document are preserved and written back
unchanged, so records produced by other tools survive a round trip.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json

CHECKPOINT_SCHEMA_VERSION = 1

_ARTIFACT_KEYS = (
    "type",
    "sha256",
    "sha512",
    "url",
    "version",
    "verified",
    "checksum_file",
    "location",
    "size_bytes",
)

_VERIFICATION_KEYS = ("gpg_verified", "checksum_file", "signing_key", "verified_at", "status")

_CHECKPOINT_KEYS = (
    "schema_version",
    "step",
    "step_number",
    "script_version",
    "created_at",
    "hostname",
    "previous_step",
    "metadata",
    "artifacts",
    "verification",
)


@dataclass
class ArtifactRecord:
    """
    Metadata for one artifact.

    Fields:
        type: Artifact type tag (e.g. debian-iso)
        sha256: Hex SHA-256 of the file
        url: Where the artifact was fetched from
        version: Version string parsed from the artifact name
        location: Absolute directory the artifact was written to
        size_bytes: File size at the time of recording
        verified: Trust flag; may only go from false to true
        sha512: Hex SHA-512 (when a SHA-512 manifest was involved)
        checksum_file: Manifest the digest was checked against
        extra: Unknown keys (preserve-unknown)
    """
    type: str
    sha256: str
    url: str
    version: str
    location: str
    size_bytes: int
    verified: bool = False
    sha512: Optional[str] = None
    checksum_file: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "sha256": self.sha256,
            "sha512": self.sha512,
            "url": self.url,
            "version": self.version,
            "verified": self.verified,
            "checksum_file": self.checksum_file,
            "location": self.location,
            "size_bytes": self.size_bytes,
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactRecord":
        return cls(
            type=data["type"],
            sha256=data["sha256"],
            sha512=data.get("sha512"),
            url=data["url"],
            version=data["version"],
            verified=bool(data.get("verified", False)),
            checksum_file=data.get("checksum_file"),
            location=data["location"],
            size_bytes=int(data["size_bytes"]),
            extra={k: v for k, v in data.items() if k not in _ARTIFACT_KEYS},
        )


@dataclass
class VerificationBlock:
    """
    Signature stage outcome.

    ``status`` keeps "chose not to check" (skipped) apart from "check
    failed" even though both leave gpg_verified false.
    """
    gpg_verified: bool
    checksum_file: Optional[str]
    verified_at: str
    status: str
    signing_key: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "gpg_verified": self.gpg_verified,
            "checksum_file": self.checksum_file,
            "signing_key": self.signing_key,
            "verified_at": self.verified_at,
            "status": self.status,
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationBlock":
        gpg_verified = bool(data["gpg_verified"])
        return cls(
            gpg_verified=gpg_verified,
            checksum_file=data.get("checksum_file"),
            signing_key=data.get("signing_key"),
            verified_at=data["verified_at"],
            status=data.get("status", "good" if gpg_verified else "unknown-failure"),
            extra={k: v for k, v in data.items() if k not in _VERIFICATION_KEYS},
        )


@dataclass
class Checkpoint:
    """
    One stage's persisted state record.

    Fields:
        schema_version: Format version (currently 1)
        step: Stage name
        step_number: Position of the stage in the pipeline
        created_at: UTC timestamp of the write
        hostname: Host that ran the stage
        previous_step: Stage this one consumed (None for the first)
        artifacts: filename -> ArtifactRecord
        script_version: Package version that wrote the record
        metadata: Free-form stage metadata
        verification: Signature outcome (signature stage onward)
        extra: Unknown top-level keys (preserve-unknown)
    """
    schema_version: Optional[int]
    step: str
    step_number: int
    created_at: str
    hostname: str
    previous_step: Optional[str]
    artifacts: Dict[str, ArtifactRecord] = field(default_factory=dict)
    script_version: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    verification: Optional[VerificationBlock] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize checkpoint to dict for JSON storage."""
        data = {
            "schema_version": self.schema_version,
            "step": self.step,
            "step_number": self.step_number,
            "script_version": self.script_version,
            "created_at": self.created_at,
            "hostname": self.hostname,
            "previous_step": self.previous_step,
            "metadata": self.metadata,
            "artifacts": {name: rec.to_dict() for name, rec in self.artifacts.items()},
        }
        if self.verification is not None:
            data["verification"] = self.verification.to_dict()
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        """Deserialize checkpoint from dict."""
        verification = data.get("verification")
        return cls(
            schema_version=data.get("schema_version"),
            step=data["step"],
            step_number=int(data["step_number"]),
            script_version=data.get("script_version"),
            created_at=data["created_at"],
            hostname=data.get("hostname", ""),
            previous_step=data.get("previous_step"),
            metadata=dict(data.get("metadata") or {}),
            artifacts={
                name: ArtifactRecord.from_dict(rec)
                for name, rec in (data.get("artifacts") or {}).items()
            },
            verification=VerificationBlock.from_dict(verification) if verification else None,
            extra={k: v for k, v in data.items() if k not in _CHECKPOINT_KEYS},
        )

    def to_json(self) -> str:
        """Serialize to JSON string (for file storage)."""
        return json.dumps(self.to_dict(), indent=2) + "\n"

    @classmethod
    def from_json(cls, json_str: str) -> "Checkpoint":
        """Deserialize from JSON string."""
        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("checkpoint document must be a JSON object")
        return cls.from_dict(data)


@dataclass
class StageResult:
    """
    Outcome of one stage run, consumed by CheckpointStore.save.

    Fields:
        step: Stage name
        step_number: Position of the stage in the pipeline
        verified: Whether this stage established trust in its artifacts
        previous_step: Stage whose checkpoint was consumed
        artifacts: Artifacts produced by this stage (first stage only)
        verification: Signature outcome to record
        metadata: Free-form stage metadata
    """
    step: str
    step_number: int
    verified: bool
    previous_step: Optional[str] = None
    artifacts: Dict[str, ArtifactRecord] = field(default_factory=dict)
    verification: Optional[VerificationBlock] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

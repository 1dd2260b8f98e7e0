"""
Checkpoint validation.

Validation levels:
- schema: schema_version equals the supported version
- fields: every artifact carries the fields later stages rely on
- monotonic: trust flags never regress between consecutive stages
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .model import Checkpoint, CHECKPOINT_SCHEMA_VERSION
from ..core.canonical import content_digest

# Fields that legitimately differ between two runs with the same outcome.
VOLATILE_FIELDS = ("created_at", "verified_at", "download_completed")


@dataclass
class ValidationResult:
    """
    Result of checkpoint validation.

    Fields:
        valid: Overall validity (all checks passed)
        schema_valid: schema_version is supported
        fields_valid: Artifact records are complete
        issues: Human-readable list of problems found
        error: First problem, if any
    """
    valid: bool
    schema_valid: bool = False
    fields_valid: bool = False
    issues: List[str] = field(default_factory=list)
    error: Optional[str] = None


def validate_checkpoint(checkpoint: Checkpoint) -> ValidationResult:
    """
    Check schema version and artifact field integrity.

    Args:
        checkpoint: Loaded checkpoint

    Returns:
        ValidationResult listing every issue found
    """
    issues = []

    schema_valid = checkpoint.schema_version == CHECKPOINT_SCHEMA_VERSION
    if not schema_valid:
        issues.append(
            f"schema_version {checkpoint.schema_version!r} != supported {CHECKPOINT_SCHEMA_VERSION}"
        )

    fields_valid = True
    for name, rec in checkpoint.artifacts.items():
        if not rec.sha256:
            fields_valid = False
            issues.append(f"artifact {name} has no sha256")
        if not rec.location:
            fields_valid = False
            issues.append(f"artifact {name} has no location")
        if rec.size_bytes < 0:
            fields_valid = False
            issues.append(f"artifact {name} has negative size")

    return ValidationResult(
        valid=not issues,
        schema_valid=schema_valid,
        fields_valid=fields_valid,
        issues=issues,
        error=issues[0] if issues else None,
    )


def verify_monotonic(previous: Checkpoint, current: Checkpoint) -> ValidationResult:
    """
    Verify current forwards previous's artifacts without regressing trust.

    Every artifact of previous must be present in current with identical
    fields, except verified, which may only move from false to true.

    Returns:
        ValidationResult (fields_valid covers the forwarding check)
    """
    issues = []
    for name, before in previous.artifacts.items():
        after = current.artifacts.get(name)
        if after is None:
            issues.append(f"artifact {name} was dropped")
            continue
        if before.verified and not after.verified:
            issues.append(f"artifact {name} verified flag regressed")
        a = before.to_dict()
        b = after.to_dict()
        a.pop("verified")
        b.pop("verified")
        if a != b:
            issues.append(f"artifact {name} was modified while forwarding")

    return ValidationResult(
        valid=not issues,
        schema_valid=True,
        fields_valid=not issues,
        issues=issues,
        error=issues[0] if issues else None,
    )


def same_content(a: Checkpoint, b: Checkpoint) -> bool:
    """True when two checkpoints are equal except for timestamps."""
    return content_digest(a.to_dict(), VOLATILE_FIELDS) == content_digest(b.to_dict(), VOLATILE_FIELDS)

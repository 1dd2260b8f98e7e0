"""
Artifact verification: checksum manifests and detached OpenPGP signatures.
"""

from .checksum import (
    ChecksumVerifier,
    ChecksumResult,
    algorithm_for,
    compute_digests,
    parse_manifest,
    manifest_entry,
)
from .gpg import Gpg, GpgOutput
from .signature import (
    SignatureVerifier,
    SignatureResult,
    SignatureStatus,
    KeyImportResult,
    ImportSummary,
    classify_output,
)

__all__ = [
    "ChecksumVerifier",
    "ChecksumResult",
    "algorithm_for",
    "compute_digests",
    "parse_manifest",
    "manifest_entry",
    "Gpg",
    "GpgOutput",
    "SignatureVerifier",
    "SignatureResult",
    "SignatureStatus",
    "KeyImportResult",
    "ImportSummary",
    "classify_output",
]

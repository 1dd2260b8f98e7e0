"""
Checksum verification against published manifests.

Manifest format (one entry per line, GNU coreutils style):

    <hex digest>  <filename>
    <hex digest> *<filename>      (binary-mode marker)

The digest algorithm is implied by the manifest name (SHA512SUMS -> sha512).
Outcomes:
- verified: digest matches
- mismatch: digest differs (hard failure)
- not-found: no manifest lists the artifact (soft failure)
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..core.errors import ArtifactNotFound, ChecksumMismatch, ManifestNotFound, NetworkError

logger = logging.getLogger(__name__)

MISMATCH = "mismatch"
NOT_FOUND = "not-found"

SIGNATURE_SUFFIX = ".sign"


def algorithm_for(manifest_name: str) -> str:
    """
    Digest algorithm implied by a manifest name.

    Raises:
        ValueError: Name does not follow the <ALGO>SUMS convention
    """
    base = Path(manifest_name).name.upper()
    if not base.endswith("SUMS"):
        raise ValueError(f"not a checksum manifest name: {manifest_name}")
    algorithm = base[: -len("SUMS")].lower()
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"unsupported digest algorithm {algorithm!r} for {manifest_name}")
    return algorithm


def compute_digests(path: Union[str, Path], algorithms: Iterable[str] = ("sha256",),
                    chunk_size: int = 1024 * 1024) -> Dict[str, str]:
    """
    Hash a file once for several algorithms.

    Returns:
        algorithm -> lower-case hex digest
    """
    hashers = {name: hashlib.new(name) for name in algorithms}
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            for h in hashers.values():
                h.update(chunk)
    return {name: h.hexdigest() for name, h in hashers.items()}


def parse_manifest(text: str, basename: str) -> Optional[str]:
    """
    Expected digest for basename, or None when not listed.

    Matches the line whose second field equals basename exactly; the
    binary-mode ``*`` marker is ignored.
    """
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        name = fields[1]
        if name.startswith("*"):
            name = name[1:]
        if name == basename:
            return fields[0].lower()
    return None


def manifest_entry(manifest: Union[str, Path], basename: str) -> Optional[str]:
    """Expected digest for basename from a manifest file (None if absent)."""
    try:
        text = Path(manifest).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    return parse_manifest(text, basename)


@dataclass
class ChecksumResult:
    """
    Result of checksum verification.

    Fields:
        verified: Digest matched the manifest entry
        reason: None, "mismatch" or "not-found"
        artifact: Artifact basename
        manifest: Manifest filename used (None when none lists the artifact)
        algorithm: Digest algorithm used for the comparison
        expected: Digest from the manifest
        actual: Digest computed locally
        digests: Every digest computed (sha256 always present)
    """
    verified: bool
    reason: Optional[str]
    artifact: str
    manifest: Optional[str] = None
    algorithm: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    digests: Dict[str, str] = field(default_factory=dict)

    @property
    def hard_failure(self) -> bool:
        return self.reason == MISMATCH

    def raise_for_status(self, stage: Optional[str] = None) -> None:
        """
        Raise the matching error for a failed result.

        Raises:
            ChecksumMismatch: reason is mismatch
            ManifestNotFound: reason is not-found
        """
        if self.reason == MISMATCH:
            raise ChecksumMismatch(
                f"{self.algorithm} mismatch against {self.manifest}: "
                f"expected {self.expected}, got {self.actual}",
                stage=stage,
                artifact=self.artifact,
            )
        if self.reason == NOT_FOUND:
            where = self.manifest or "any manifest"
            raise ManifestNotFound(f"no checksum entry in {where}", stage=stage, artifact=self.artifact)


class ChecksumVerifier:
    """Locate or fetch a manifest, then compare digests."""

    def __init__(self, config, fetcher=None):
        """
        Args:
            config: PipelineConfig (workdir, base_url, manifest_names, chunk_size)
            fetcher: ResumableFetcher used to download missing manifests
                (None = only local manifests are considered)
        """
        self.config = config
        self.fetcher = fetcher

    def _fetch(self, name: str, refresh: bool = False) -> bool:
        target = self.config.workpath / name
        try:
            self.fetcher.fetch(self.config.url_for(name), target, refresh=refresh)
        except NetworkError as ex:
            logger.debug("Could not fetch %s: %s", name, ex)
            return False
        return True

    def locate_manifest(self, basename: str) -> Optional[Path]:
        """
        Find a manifest listing basename, in preference order.

        A local manifest that already lists the artifact is reused.
        Otherwise the manifest is downloaded, followed by its detached
        signature; a failed signature fetch only warns.

        Returns:
            Path of the manifest, or None when no candidate lists basename
        """
        for name in self.config.manifest_names:
            local = self.config.workpath / name
            if manifest_entry(local, basename) is not None:
                logger.info("Using local manifest %s", name)
                return local
            if self.fetcher is None:
                continue
            # A stale local copy is only replaced once the new one has arrived.
            if not self._fetch(name, refresh=True):
                continue
            signature = local.with_name(name + SIGNATURE_SUFFIX)
            if not self._fetch(signature.name, refresh=True):
                logger.warning("Signature %s unavailable", signature.name)
                if signature.exists():
                    # Belongs to the previous manifest.
                    signature.unlink()
            if manifest_entry(local, basename) is not None:
                logger.info("Fetched manifest %s", name)
                return local
            logger.debug("Manifest %s does not list %s", name, basename)
        return None

    def verify_against(self, manifest: Union[str, Path], artifact_path: Union[str, Path]) -> ChecksumResult:
        """
        Verify an artifact against one explicitly named manifest.

        A manifest that does not list the artifact yields reason not-found.

        Raises:
            ArtifactNotFound: artifact_path does not exist
        """
        artifact_path = Path(artifact_path)
        manifest = Path(manifest)
        basename = artifact_path.name
        if not artifact_path.is_file():
            raise ArtifactNotFound(f"artifact missing: {artifact_path}", artifact=basename)

        algorithm = algorithm_for(manifest.name)
        expected = manifest_entry(manifest, basename)
        if expected is None:
            logger.warning("%s has no entry for %s", manifest.name, basename)
            digests = compute_digests(artifact_path, ["sha256"], self.config.chunk_size)
            return ChecksumResult(
                verified=False,
                reason=NOT_FOUND,
                artifact=basename,
                manifest=manifest.name,
                algorithm=algorithm,
                digests=digests,
            )

        logger.info("Computing %s of %s", algorithm, basename)
        digests = compute_digests(artifact_path, sorted({"sha256", algorithm}), self.config.chunk_size)
        actual = digests[algorithm]
        verified = actual.lower() == expected.lower()
        if verified:
            logger.info("%s checksum verified against %s", basename, manifest.name)
        else:
            logger.error("%s checksum MISMATCH against %s", basename, manifest.name)
        return ChecksumResult(
            verified=verified,
            reason=None if verified else MISMATCH,
            artifact=basename,
            manifest=manifest.name,
            algorithm=algorithm,
            expected=expected,
            actual=actual,
            digests=digests,
        )

    def verify(self, artifact_path: Union[str, Path]) -> ChecksumResult:
        """
        Verify an artifact using the preferred available manifest.

        Returns:
            ChecksumResult (reason not-found when no manifest lists it)

        Raises:
            ArtifactNotFound: artifact_path does not exist
        """
        artifact_path = Path(artifact_path)
        if not artifact_path.is_file():
            raise ArtifactNotFound(f"artifact missing: {artifact_path}", artifact=artifact_path.name)

        manifest = self.locate_manifest(artifact_path.name)
        if manifest is None:
            logger.warning("No manifest lists %s", artifact_path.name)
            return ChecksumResult(
                verified=False,
                reason=NOT_FOUND,
                artifact=artifact_path.name,
                digests=compute_digests(artifact_path, ["sha256"], self.config.chunk_size),
            )
        return self.verify_against(manifest, artifact_path)

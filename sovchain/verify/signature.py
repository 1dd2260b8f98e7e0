"""
Detached signature verification.

Order of checks:
1. skip requested        -> skipped (no keyserver, no gpg)
2. signature file absent -> no-signature
3. gpg not installed     -> DependencyMissing (dependency-missing with force)
4. trusted key import    -> key-import-failed when no key could be imported
5. gpg --verify          -> good / bad-signature / no-public-key / unknown-failure
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .gpg import Gpg, GpgOutput
from ..core.errors import DependencyMissing, SignatureInvalid, SignatureMissing

logger = logging.getLogger(__name__)


class SignatureStatus:
    """Signature outcomes as recorded in checkpoints."""
    GOOD = "good"
    SKIPPED = "skipped"
    NO_SIGNATURE = "no-signature"
    BAD_SIGNATURE = "bad-signature"
    NO_PUBLIC_KEY = "no-public-key"
    KEY_IMPORT_FAILED = "key-import-failed"
    DEPENDENCY_MISSING = "dependency-missing"
    UNKNOWN_FAILURE = "unknown-failure"


_VALIDSIG_RE = re.compile(r"^\[GNUPG:\] VALIDSIG ([0-9A-Fa-f]+)", re.MULTILINE)
_GOODSIG_RE = re.compile(r"^\[GNUPG:\] GOODSIG ([0-9A-Fa-f]+)", re.MULTILINE)
_USING_KEY_RE = re.compile(r"using \w+ key ([0-9A-Fa-f]+)")


@dataclass
class KeyImportResult:
    """
    Import outcome for one trusted key.

    Fields:
        key_id: Key that was requested
        provider: Keyserver that supplied it (None = all failed)
        attempts: Keyservers tried, in order
    """
    key_id: str
    provider: Optional[str]
    attempts: List[str] = field(default_factory=list)

    @property
    def imported(self) -> bool:
        return self.provider is not None


@dataclass
class ImportSummary:
    results: List[KeyImportResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """At least one trusted key was imported."""
        return any(r.imported for r in self.results)

    @property
    def imported_keys(self) -> List[str]:
        return [r.key_id for r in self.results if r.imported]


@dataclass
class SignatureResult:
    """
    Result of signature verification.

    Fields:
        verified: Signature is good and made by an imported key
        status: One of SignatureStatus
        signing_key: Key id or fingerprint reported by gpg (good only)
        import_summary: Key import outcome (None when import was not reached)
        detail: Last relevant gpg output line
    """
    verified: bool
    status: str
    signing_key: Optional[str] = None
    import_summary: Optional[ImportSummary] = None
    detail: Optional[str] = None

    def raise_for_status(self, stage: Optional[str] = None, artifact: Optional[str] = None) -> None:
        """
        Raise for statuses that block the pipeline.

        good and skipped do not raise.

        Raises:
            SignatureMissing: no-signature
            SignatureInvalid: any other failed status
        """
        if self.status in (SignatureStatus.GOOD, SignatureStatus.SKIPPED):
            return
        if self.status == SignatureStatus.NO_SIGNATURE:
            raise SignatureMissing("detached signature not found", stage=stage, artifact=artifact)
        message = f"signature verification failed: {self.status}"
        if self.detail:
            message += f" ({self.detail})"
        raise SignatureInvalid(message, stage=stage, artifact=artifact)


def classify_output(output: GpgOutput) -> Tuple[str, Optional[str]]:
    """
    Classify gpg --verify output.

    Returns:
        (status, signing_key) where signing_key is only set for good
    """
    text = output.text
    if "[GNUPG:] BADSIG" in text or "BAD signature" in text:
        return SignatureStatus.BAD_SIGNATURE, None

    good = (
        "[GNUPG:] GOODSIG" in text
        or "[GNUPG:] VALIDSIG" in text
        or "Good signature" in text
    )
    if good and output.ok:
        for pattern in (_VALIDSIG_RE, _USING_KEY_RE, _GOODSIG_RE):
            match = pattern.search(text)
            if match:
                return SignatureStatus.GOOD, match.group(1).upper()
        return SignatureStatus.GOOD, None

    if "[GNUPG:] NO_PUBKEY" in text or "No public key" in text:
        return SignatureStatus.NO_PUBLIC_KEY, None
    return SignatureStatus.UNKNOWN_FAILURE, None


def _last_line(output: GpgOutput) -> Optional[str]:
    lines = [line.strip() for line in output.stderr.splitlines() if line.strip()]
    return lines[-1] if lines else None


class SignatureVerifier:
    """Import trusted keys and verify a manifest's detached signature."""

    def __init__(self, config, gpg: Optional[Gpg] = None):
        self.config = config
        self.gpg = gpg or Gpg.from_config(config)

    def import_key(self, key_id: str) -> KeyImportResult:
        """Try each keyserver in order; the first success wins."""
        attempts = []
        for keyserver in self.config.keyservers:
            attempts.append(keyserver)
            logger.debug("Importing key %s from %s", key_id, keyserver)
            if self.gpg.recv_key(keyserver, key_id):
                logger.info("Imported key %s from %s", key_id, keyserver)
                return KeyImportResult(key_id=key_id, provider=keyserver, attempts=attempts)
        logger.warning("Could not import key %s from any keyserver", key_id)
        return KeyImportResult(key_id=key_id, provider=None, attempts=attempts)

    def import_trusted_keys(self) -> ImportSummary:
        return ImportSummary(results=[self.import_key(k) for k in self.config.trusted_keys])

    def verify(self, manifest: Union[str, Path], signature: Union[str, Path]) -> SignatureResult:
        """
        Verify signature over manifest.

        Args:
            manifest: Signed manifest file
            signature: Detached signature file

        Returns:
            SignatureResult

        Raises:
            DependencyMissing: gpg not installed and force is off
        """
        if self.config.skip_gpg:
            logger.warning("GPG verification skipped by request")
            return SignatureResult(verified=False, status=SignatureStatus.SKIPPED)

        signature = Path(signature)
        if not signature.is_file():
            logger.error("Signature file %s not found", signature.name)
            return SignatureResult(verified=False, status=SignatureStatus.NO_SIGNATURE)

        if not self.gpg.available():
            if not self.config.force:
                raise DependencyMissing(f"`{self.gpg.binary}` is required for signature verification")
            logger.error("gpg not installed; continuing because of --force")
            return SignatureResult(verified=False, status=SignatureStatus.DEPENDENCY_MISSING)

        summary = self.import_trusted_keys()
        if not summary.succeeded:
            logger.error("No trusted key could be imported")
            return SignatureResult(
                verified=False,
                status=SignatureStatus.KEY_IMPORT_FAILED,
                import_summary=summary,
            )

        output = self.gpg.verify_detached(str(signature), str(manifest))
        status, signing_key = classify_output(output)
        if status == SignatureStatus.GOOD:
            logger.info("Good signature on %s (key %s)", Path(manifest).name, signing_key or "unknown")
        else:
            logger.error("Signature check on %s failed: %s", Path(manifest).name, status)
        return SignatureResult(
            verified=status == SignatureStatus.GOOD,
            status=status,
            signing_key=signing_key,
            import_summary=summary,
            detail=_last_line(output),
        )

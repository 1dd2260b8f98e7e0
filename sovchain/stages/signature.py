"""
gpg-verify-host: re-verify checksums and verify the manifest signature.

Consumes the download-host checkpoint and forwards its artifacts; the
verified flag is raised only when the signature is good.
"""

from pathlib import Path
from typing import Dict, Optional

from .base import Stage, SIGNATURE_STAGE
from ..checkpoint import Checkpoint, StageResult, VerificationBlock
from ..core.errors import ArtifactNotFound
from ..verify import ChecksumResult, ChecksumVerifier, SignatureResult, SignatureStatus, SignatureVerifier
from ..verify.checksum import NOT_FOUND, SIGNATURE_SUFFIX


class SignatureStage(Stage):
    """
    Second pipeline stage.

    skip_gpg records status skipped and proceeds. Any other non-good
    signature outcome aborts unless force is set; the true status is
    recorded either way.
    """

    name = SIGNATURE_STAGE

    def __init__(self, config, store=None, verifier: Optional[SignatureVerifier] = None):
        super().__init__(config, store)
        self.checksums = ChecksumVerifier(config)
        self.signatures = verifier or SignatureVerifier(config)

    def _manifest_for(self, name: str, recorded: Optional[str]) -> Optional[Path]:
        if recorded:
            return self.config.workpath / recorded
        return self.checksums.locate_manifest(name)

    def _verify_checksum(self, name: str, path: Path, recorded: Optional[str]) -> ChecksumResult:
        manifest = self._manifest_for(name, recorded)
        if manifest is None:
            return ChecksumResult(verified=False, reason=NOT_FOUND, artifact=name)
        return self.checksums.verify_against(manifest, path)

    def execute(self) -> Checkpoint:
        previous = self.load_previous()
        if not previous.artifacts:
            raise ArtifactNotFound(f"{previous.step} checkpoint lists no artifacts", stage=self.name)

        verified = True
        manifest_name = None
        signature_results: Dict[str, SignatureResult] = {}
        signature: Optional[SignatureResult] = None

        for name, record in previous.artifacts.items():
            path = self.store.locate_artifact(previous, name)
            if path is None:
                raise ArtifactNotFound(f"{name} not found in {self.config.workdir} or {record.location}",
                                       stage=self.name, artifact=name)

            checksum = self._verify_checksum(name, path, record.checksum_file)
            if not checksum.verified:
                if checksum.hard_failure or not self.config.force:
                    checksum.raise_for_status(stage=self.name)
                self.log.warning("Checksum of %s not re-verified (%s); continuing because of --force",
                                 name, checksum.reason)
                verified = False

            if checksum.manifest is None:
                status = SignatureStatus.SKIPPED if self.config.skip_gpg else SignatureStatus.NO_SIGNATURE
                signature = SignatureResult(verified=False, status=status)
            elif checksum.manifest in signature_results:
                signature = signature_results[checksum.manifest]
            else:
                manifest = self.config.workpath / checksum.manifest
                signature = self.signatures.verify(manifest, Path(str(manifest) + SIGNATURE_SUFFIX))
                signature_results[checksum.manifest] = signature
            manifest_name = manifest_name or checksum.manifest

            if signature.status == SignatureStatus.SKIPPED:
                self.log.warning("GPG verification skipped for %s", name)
            elif not signature.verified:
                if not self.config.force:
                    signature.raise_for_status(stage=self.name, artifact=name)
                self.log.warning("Signature not verified for %s (%s); continuing because of --force",
                                 name, signature.status)
            verified = verified and signature.verified

        metadata = {}
        if signature is not None and signature.import_summary is not None:
            metadata["keys_imported"] = signature.import_summary.imported_keys

        stage_result = StageResult(
            step=self.name,
            step_number=self.step_number,
            verified=verified,
            previous_step=previous.step,
            verification=VerificationBlock(
                gpg_verified=bool(signature and signature.verified),
                checksum_file=manifest_name,
                signing_key=signature.signing_key if signature else None,
                verified_at=self.store.clock.timestamp(),
                status=signature.status if signature else SignatureStatus.UNKNOWN_FAILURE,
            ),
            metadata=metadata,
        )
        return self.store.save(self.store.path_for(self.name), previous, stage_result)

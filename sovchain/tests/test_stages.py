"""
End-to-end tests for the download-host and gpg-verify-host stages.

Critical tests:
1. Idempotence: a second download transfers nothing and yields the same checkpoint
2. Hard failures (checksum mismatch) never write a checkpoint, even with force
3. Trust is monotonic across stages, skip is recorded as skipped
4. Stage status follows NOT_STARTED -> COMPLETED, RUNNING while locked
"""

import hashlib
import json

import pytest

from sovchain.checkpoint import CheckpointStore, same_content, verify_monotonic
from sovchain.core.clock import FixedClock
from sovchain.core.config import PipelineConfig
from sovchain.core.errors import (
    ArtifactNotFound,
    ChecksumMismatch,
    CheckpointNotFound,
    ManifestNotFound,
    SchemaVersionMismatch,
    SignatureInvalid,
    StageLocked,
)
from sovchain.core.lock import StageLock
from sovchain.net import HttpClient
from sovchain.stages import (
    DownloadStage,
    SignatureStage,
    StageState,
    pipeline_status,
)
from sovchain.verify import Gpg, SignatureStatus, SignatureVerifier
from sovchain.tests.fakes import BASE_URL, GOOD_FPR, FakeGpgRunner, FakeMirror

ISO = "debian-12.10.0-amd64-netinst.iso"
BODY = b"netinst 12.10.0 " * 4096
SHA256 = hashlib.sha256(BODY).hexdigest()


def _mirror(digest: str = SHA256, listed_name: str = ISO) -> FakeMirror:
    return FakeMirror({
        ISO: BODY,
        "debian-12.9.0-amd64-netinst.iso": b"older release",
        "SHA256SUMS": f"{digest}  {listed_name}\n".encode(),
        "SHA256SUMS.sign": b"-----BEGIN PGP SIGNATURE-----",
    })


def _config(tmp_path, **kwargs) -> PipelineConfig:
    return PipelineConfig(workdir=str(tmp_path), base_url=BASE_URL, **kwargs)


def _store(tmp_path) -> CheckpointStore:
    return CheckpointStore(str(tmp_path), clock=FixedClock(), hostname="testhost")


def _download_stage(tmp_path, mirror, **kwargs) -> DownloadStage:
    return DownloadStage(_config(tmp_path, **kwargs), _store(tmp_path), http=HttpClient(session=mirror))


def _signature_stage(tmp_path, runner, **kwargs) -> SignatureStage:
    config = _config(tmp_path, **kwargs)
    gpg = Gpg(runner=runner, which=lambda binary: "/usr/bin/gpg")
    return SignatureStage(config, _store(tmp_path), verifier=SignatureVerifier(config, gpg=gpg))


def test_download_writes_checkpoint(tmp_path):
    stage = _download_stage(tmp_path, _mirror())
    cp = stage.run()

    assert stage.state == StageState.COMPLETED
    assert (tmp_path / ISO).read_bytes() == BODY
    rec = cp.artifacts[ISO]
    assert rec.sha256 == SHA256
    assert rec.verified is True
    assert rec.version == "12.10.0"
    assert rec.checksum_file == "SHA256SUMS"
    assert rec.location == str(tmp_path)
    assert rec.size_bytes == len(BODY)
    assert rec.extra["size_human"] == "64K"
    assert cp.metadata["base_url"] == BASE_URL
    assert cp.step_number == 1 and cp.previous_step is None

    on_disk = json.loads((tmp_path / "download-host.checkpoint.json").read_text())
    assert on_disk["artifacts"][ISO]["url"] == BASE_URL + ISO


def test_download_is_idempotent(tmp_path):
    mirror = _mirror()
    first = _download_stage(tmp_path, mirror).run()
    second = _download_stage(tmp_path, mirror).run()

    assert mirror.requested("GET", ISO) == 1, "second run must transfer zero bytes"
    assert same_content(first, second)


def test_checksum_mismatch_writes_no_checkpoint(tmp_path):
    stage = _download_stage(tmp_path, _mirror(digest="0" * 64), force=True)

    with pytest.raises(ChecksumMismatch) as excinfo:
        stage.run()

    assert excinfo.value.stage == "download-host"
    assert excinfo.value.artifact == ISO
    assert stage.state == StageState.FAILED
    assert not (tmp_path / "download-host.checkpoint.json").exists()


def test_missing_manifest_entry_requires_force(tmp_path):
    with pytest.raises(ManifestNotFound):
        _download_stage(tmp_path, _mirror(listed_name="other.iso")).run()
    assert not (tmp_path / "download-host.checkpoint.json").exists()

    cp = _download_stage(tmp_path, _mirror(listed_name="other.iso"), force=True).run()
    assert cp.artifacts[ISO].verified is False
    assert cp.artifacts[ISO].checksum_file is None
    assert cp.artifacts[ISO].sha256 == SHA256


def test_signature_stage_good(tmp_path):
    first = _download_stage(tmp_path, _mirror()).run()
    runner = FakeGpgRunner()

    second = _signature_stage(tmp_path, runner).run()

    assert second.previous_step == "download-host"
    assert second.step_number == 2
    assert second.verification.gpg_verified is True
    assert second.verification.status == SignatureStatus.GOOD
    assert second.verification.signing_key == GOOD_FPR
    assert second.verification.checksum_file == "SHA256SUMS"
    assert second.artifacts[ISO].verified is True
    assert second.metadata["keys_imported"]
    assert verify_monotonic(first, second).valid


def test_skip_gpg_records_skipped_and_keeps_trust(tmp_path):
    first = _download_stage(tmp_path, _mirror()).run()
    runner = FakeGpgRunner()

    second = _signature_stage(tmp_path, runner, skip_gpg=True).run()

    assert runner.commands == [], "skip must not contact keyservers or run gpg"
    assert second.verification.status == SignatureStatus.SKIPPED
    assert second.verification.gpg_verified is False
    assert second.artifacts[ISO].verified is True
    assert verify_monotonic(first, second).valid


def test_unverified_download_raised_by_good_signature(tmp_path):
    """
    Checksum entry was missing at download (forced); by the signature
    stage the manifest lists it, so trust is established.
    """
    _download_stage(tmp_path, _mirror(listed_name="other.iso"), force=True).run()
    (tmp_path / "SHA256SUMS").write_text(f"{SHA256}  {ISO}\n")

    second = _signature_stage(tmp_path, FakeGpgRunner()).run()

    assert second.verification.checksum_file == "SHA256SUMS"
    assert second.artifacts[ISO].verified is True


def test_bad_signature_aborts_without_force(tmp_path):
    _download_stage(tmp_path, _mirror()).run()

    with pytest.raises(SignatureInvalid, match="bad-signature"):
        _signature_stage(tmp_path, FakeGpgRunner(verify_status="bad")).run()
    assert not (tmp_path / "gpg-verify-host.checkpoint.json").exists()


def test_force_records_true_status(tmp_path):
    _download_stage(tmp_path, _mirror()).run()

    cp = _signature_stage(tmp_path, FakeGpgRunner(verify_status="bad"), force=True).run()

    assert cp.verification.status == SignatureStatus.BAD_SIGNATURE
    assert cp.verification.gpg_verified is False


def test_signature_stage_requires_previous_checkpoint(tmp_path):
    with pytest.raises(CheckpointNotFound, match="download-host"):
        _signature_stage(tmp_path, FakeGpgRunner()).run()


def test_schema_mismatch_rejected_unless_forced(tmp_path):
    _download_stage(tmp_path, _mirror()).run()
    path = tmp_path / "download-host.checkpoint.json"
    data = json.loads(path.read_text())
    data["schema_version"] = 2
    path.write_text(json.dumps(data))

    with pytest.raises(SchemaVersionMismatch):
        _signature_stage(tmp_path, FakeGpgRunner()).run()

    cp = _signature_stage(tmp_path, FakeGpgRunner(), force=True).run()
    assert cp.schema_version == 1


def test_recorded_manifest_without_entry_is_verification_failure(tmp_path):
    _download_stage(tmp_path, _mirror()).run()
    (tmp_path / "SHA256SUMS").write_text(f"{SHA256}  something-else.iso\n")

    with pytest.raises(ManifestNotFound):
        _signature_stage(tmp_path, FakeGpgRunner()).run()


def test_tampered_artifact_detected_by_signature_stage(tmp_path):
    _download_stage(tmp_path, _mirror()).run()
    (tmp_path / ISO).write_bytes(BODY[:-1] + b"X")

    with pytest.raises(ChecksumMismatch):
        _signature_stage(tmp_path, FakeGpgRunner()).run()


def test_missing_artifact_detected(tmp_path):
    _download_stage(tmp_path, _mirror()).run()
    (tmp_path / ISO).unlink()

    with pytest.raises(ArtifactNotFound):
        _signature_stage(tmp_path, FakeGpgRunner()).run()


def test_concurrent_run_is_rejected(tmp_path):
    with StageLock(str(tmp_path), "download-host"):
        with pytest.raises(StageLocked):
            _download_stage(tmp_path, _mirror()).run()


def test_pipeline_status_transitions(tmp_path):
    config = _config(tmp_path)
    states = [s.state for s in pipeline_status(config)]
    assert states == [StageState.NOT_STARTED, StageState.NOT_STARTED]

    _download_stage(tmp_path, _mirror()).run()
    download, signature = pipeline_status(config)
    assert download.state == StageState.COMPLETED
    assert download.files == {ISO: True, "SHA256SUMS": True}
    assert download.verified == {ISO: True}
    assert download.healthy
    assert signature.state == StageState.NOT_STARTED

    with StageLock(str(tmp_path), "gpg-verify-host"):
        assert pipeline_status(config)[1].state == StageState.RUNNING

    (tmp_path / ISO).unlink()
    assert not pipeline_status(config)[0].healthy

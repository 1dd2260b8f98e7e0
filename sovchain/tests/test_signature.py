"""
Tests for signature verification.

Critical tests:
1. skip never touches a keyserver or gpg
2. Keyservers are tried in order, first success wins
3. gpg output classification (good / bad / no key / unknown)
4. Missing gpg is terminal unless forced
"""

import subprocess

import pytest

from sovchain.core.config import PipelineConfig
from sovchain.core.errors import DependencyMissing, SignatureInvalid, SignatureMissing
from sovchain.verify import Gpg, GpgOutput, SignatureStatus, SignatureVerifier, classify_output
from sovchain.tests.fakes import FakeGpgRunner, GOOD_FPR


def _verifier(tmp_path, runner, installed=True, **config) -> SignatureVerifier:
    cfg = PipelineConfig(workdir=str(tmp_path), **config)
    gpg = Gpg.from_config(cfg, runner=runner, which=lambda binary: "/usr/bin/gpg" if installed else None)
    return SignatureVerifier(cfg, gpg=gpg)


def _files(tmp_path):
    manifest = tmp_path / "SHA256SUMS"
    manifest.write_text("abc  debian.iso\n")
    signature = tmp_path / "SHA256SUMS.sign"
    signature.write_bytes(b"sig")
    return manifest, signature


def test_skip_never_calls_gpg(tmp_path):
    runner = FakeGpgRunner()
    manifest, signature = _files(tmp_path)

    result = _verifier(tmp_path, runner, skip_gpg=True).verify(manifest, signature)

    assert result.status == SignatureStatus.SKIPPED
    assert not result.verified
    assert runner.commands == []
    result.raise_for_status()


def test_missing_signature_file(tmp_path):
    runner = FakeGpgRunner()
    manifest, signature = _files(tmp_path)
    signature.unlink()

    result = _verifier(tmp_path, runner).verify(manifest, signature)

    assert result.status == SignatureStatus.NO_SIGNATURE
    assert runner.commands == []
    with pytest.raises(SignatureMissing):
        result.raise_for_status(stage="gpg-verify-host")


def test_gpg_missing_is_terminal(tmp_path):
    manifest, signature = _files(tmp_path)
    with pytest.raises(DependencyMissing, match="gpg"):
        _verifier(tmp_path, FakeGpgRunner(), installed=False).verify(manifest, signature)


def test_gpg_missing_with_force_is_recorded(tmp_path):
    manifest, signature = _files(tmp_path)
    result = _verifier(tmp_path, FakeGpgRunner(), installed=False, force=True).verify(manifest, signature)
    assert result.status == SignatureStatus.DEPENDENCY_MISSING
    assert not result.verified


def test_keyservers_tried_in_order_first_success(tmp_path):
    runner = FakeGpgRunner(reachable=("keys.openpgp.org", "pgp.mit.edu"))
    verifier = _verifier(tmp_path, runner, trusted_keys=("DA87E80D6294BE9B",))

    result = verifier.import_key("DA87E80D6294BE9B")

    assert result.imported
    assert result.provider == "keys.openpgp.org"
    assert result.attempts == ["keyserver.ubuntu.com", "keys.openpgp.org"]
    assert runner.ran("--recv-keys") == 2, "pgp.mit.edu must not be contacted"


def test_all_imports_failed(tmp_path):
    runner = FakeGpgRunner(reachable=())
    manifest, signature = _files(tmp_path)

    result = _verifier(tmp_path, runner).verify(manifest, signature)

    assert result.status == SignatureStatus.KEY_IMPORT_FAILED
    assert not result.import_summary.succeeded
    assert runner.ran("--verify") == 0
    with pytest.raises(SignatureInvalid, match="key-import-failed"):
        result.raise_for_status()


def test_good_signature(tmp_path):
    runner = FakeGpgRunner()
    manifest, signature = _files(tmp_path)

    result = _verifier(tmp_path, runner, gnupg_home=str(tmp_path / "gnupg")).verify(manifest, signature)

    assert result.verified
    assert result.status == SignatureStatus.GOOD
    assert result.signing_key == GOOD_FPR
    assert len(result.import_summary.imported_keys) == 3
    verify_cmd = [c for c in runner.commands if "--verify" in c][0]
    assert verify_cmd[:4] == ["gpg", "--batch", "--homedir", str(tmp_path / "gnupg")]
    assert verify_cmd[-2:] == [str(signature), str(manifest)]


@pytest.mark.parametrize(
    "verify_status,expected",
    [
        ("bad", SignatureStatus.BAD_SIGNATURE),
        ("no-pubkey", SignatureStatus.NO_PUBLIC_KEY),
        ("error", SignatureStatus.UNKNOWN_FAILURE),
    ],
)
def test_failed_signature_statuses(tmp_path, verify_status, expected):
    runner = FakeGpgRunner(verify_status=verify_status)
    manifest, signature = _files(tmp_path)

    result = _verifier(tmp_path, runner).verify(manifest, signature)

    assert not result.verified
    assert result.status == expected
    assert result.signing_key is None


def test_classify_text_only_output():
    """Human-readable output without status lines is still understood."""
    out = GpgOutput(
        0,
        "",
        "gpg:                using RSA key 1234ABCD1234ABCD\ngpg: Good signature from \"Someone\"\n",
    )
    assert classify_output(out) == (SignatureStatus.GOOD, "1234ABCD1234ABCD")


def test_classify_good_text_with_failing_exit_code():
    out = GpgOutput(2, "", "gpg: Good signature from \"Someone\"\n")
    assert classify_output(out)[0] == SignatureStatus.UNKNOWN_FAILURE


def test_timeout_counts_as_failure():
    def slow_runner(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout"))

    gpg = Gpg(runner=slow_runner, which=lambda binary: "/usr/bin/gpg")
    assert not gpg.recv_key("keyserver.ubuntu.com", "DA87E80D6294BE9B")

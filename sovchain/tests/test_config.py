"""
Tests for configuration and environment overrides.
"""

import dataclasses
import os

import pytest

from sovchain.core.config import PipelineConfig, DEFAULT_KEYSERVERS, DEFAULT_TRUSTED_KEYS


def test_defaults():
    config = PipelineConfig()
    assert config.connect_timeout == 30
    assert config.manifest_names == ("SHA512SUMS", "SHA256SUMS")
    assert config.trusted_keys == DEFAULT_TRUSTED_KEYS
    assert config.keyservers == DEFAULT_KEYSERVERS
    assert config.workdir == os.path.abspath(".")
    assert config.timeout == (30, 3600)


def test_base_url_gets_trailing_slash():
    config = PipelineConfig(base_url="https://mirror.example/iso-cd")
    assert config.base_url == "https://mirror.example/iso-cd/"
    assert config.url_for("SHA256SUMS") == "https://mirror.example/iso-cd/SHA256SUMS"


def test_config_is_immutable():
    config = PipelineConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.force = True


def test_from_env_reads_variables(tmp_path):
    env = {
        "SOVCHAIN_WORKDIR": str(tmp_path),
        "SOVCHAIN_BASE_URL": "https://mirror.example/",
        "SOVCHAIN_CONNECT_TIMEOUT": "5",
        "SOVCHAIN_READ_TIMEOUT": "not-a-number",
        "SOVCHAIN_KEYSERVERS": "keys.openpgp.org, pgp.mit.edu",
        "SOVCHAIN_GNUPG_HOME": "/tmp/gnupg",
    }
    config = PipelineConfig.from_env(env)

    assert config.workdir == str(tmp_path)
    assert config.base_url == "https://mirror.example/"
    assert config.connect_timeout == 5
    assert config.read_timeout == 3600, "invalid numbers fall back to the default"
    assert config.keyservers == ("keys.openpgp.org", "pgp.mit.edu")
    assert config.gnupg_home == "/tmp/gnupg"


def test_overrides_win_and_none_is_ignored(tmp_path):
    env = {"SOVCHAIN_WORKDIR": "/nonexistent", "SOVCHAIN_CONNECT_TIMEOUT": "5"}
    config = PipelineConfig.from_env(env, workdir=str(tmp_path), connect_timeout=None, force=True)

    assert config.workdir == str(tmp_path)
    assert config.connect_timeout == 5
    assert config.force is True

    changed = config.with_overrides(skip_gpg=True, base_url=None)
    assert changed.skip_gpg is True
    assert changed.base_url == config.base_url
    assert config.skip_gpg is False

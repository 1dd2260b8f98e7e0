"""
Pipeline configuration.

A single immutable PipelineConfig is built once (from defaults, environment
and command-line flags) and passed explicitly into every component.

Environment Variables:
    SOVCHAIN_WORKDIR: Working root for artifacts and checkpoints - default: cwd
    SOVCHAIN_BASE_URL: Mirror directory listing the artifact
    SOVCHAIN_CONNECT_TIMEOUT: Connect timeout in seconds - default: 30
    SOVCHAIN_READ_TIMEOUT: Read timeout in seconds - default: 3600
    SOVCHAIN_GNUPG_HOME: Isolated gpg home directory - default: gpg's own
    SOVCHAIN_KEYSERVERS: Comma-separated keyserver list, tried in order
"""

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

DEFAULT_BASE_URL = "https://cdimage.debian.org/debian-cd/current/amd64/iso-cd/"
DEFAULT_ARTIFACT_PATTERN = r"debian-[0-9.]+-amd64-netinst\.iso"
DEFAULT_ARTIFACT_TYPE = "debian-iso"

# Strongest digest first.
DEFAULT_MANIFESTS = ("SHA512SUMS", "SHA256SUMS")

# Debian CD signing keys.
DEFAULT_TRUSTED_KEYS = (
    "988021A964E6EA7D",
    "DA87E80D6294BE9B",
    "42468F4009EA8AC3",
)

DEFAULT_KEYSERVERS = (
    "keyserver.ubuntu.com",
    "keys.openpgp.org",
    "pgp.mit.edu",
)

DEFAULT_CONNECT_TIMEOUT = 30
DEFAULT_READ_TIMEOUT = 3600
DEFAULT_CHUNK_SIZE = 1024 * 1024


def _env_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    val = environ.get(key)
    if not val:
        return None
    try:
        parsed = int(val)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _env_list(environ: Mapping[str, str], key: str) -> Optional[Tuple[str, ...]]:
    val = environ.get(key)
    if not val:
        return None
    items = tuple(part.strip() for part in val.split(",") if part.strip())
    return items or None


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable settings shared by all pipeline components.

    Fields:
        workdir: Working root holding artifacts, manifests and checkpoints
        base_url: Mirror directory the artifact is discovered and fetched from
        artifact_pattern: Regex matching candidate artifact names in the listing
        artifact_type: Type tag recorded for each artifact
        manifest_names: Checksum manifests in preference order
        trusted_keys: Signing key ids imported before signature verification
        keyservers: Key providers, tried in order (first success wins)
        gnupg_home: Optional isolated gpg home directory
        connect_timeout: Seconds to wait for a connection
        read_timeout: Seconds to wait between bytes of a transfer
        chunk_size: Streaming buffer size in bytes
        skip_gpg: Do not import keys or verify signatures
        force: Continue past soft failures (true status is still recorded)
        dry_run: Rollback simulates removals only
        remove_keys: Rollback also removes imported trusted keys
        verbose: Debug logging
    """
    workdir: str = "."
    base_url: str = DEFAULT_BASE_URL
    artifact_pattern: str = DEFAULT_ARTIFACT_PATTERN
    artifact_type: str = DEFAULT_ARTIFACT_TYPE
    manifest_names: Tuple[str, ...] = DEFAULT_MANIFESTS
    trusted_keys: Tuple[str, ...] = DEFAULT_TRUSTED_KEYS
    keyservers: Tuple[str, ...] = DEFAULT_KEYSERVERS
    gnupg_home: Optional[str] = None
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    read_timeout: int = DEFAULT_READ_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    skip_gpg: bool = False
    force: bool = False
    dry_run: bool = False
    remove_keys: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        # Normalize once so every component sees the same values.
        object.__setattr__(self, "workdir", os.path.abspath(self.workdir))
        if not self.base_url.endswith("/"):
            object.__setattr__(self, "base_url", self.base_url + "/")
        for name in ("manifest_names", "trusted_keys", "keyservers"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def workpath(self) -> Path:
        return Path(self.workdir)

    @property
    def timeout(self) -> Tuple[int, int]:
        """(connect, read) tuple as accepted by requests."""
        return (self.connect_timeout, self.read_timeout)

    def url_for(self, name: str) -> str:
        """Absolute URL of a file in the mirror directory."""
        return f"{self.base_url}{name}"

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """
        Return a copy with the given fields replaced.

        None values are ignored so unset command-line options keep the
        current setting.
        """
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "PipelineConfig":
        """
        Build configuration from SOVCHAIN_* environment variables.

        Invalid numeric values fall back to defaults. Explicit overrides win
        over the environment.

        Args:
            environ: Mapping to read from (default: os.environ)
            **overrides: Field values taking precedence (None = unset)

        Returns:
            PipelineConfig instance
        """
        env = os.environ if environ is None else environ
        values = {}
        if env.get("SOVCHAIN_WORKDIR"):
            values["workdir"] = env["SOVCHAIN_WORKDIR"]
        if env.get("SOVCHAIN_BASE_URL"):
            values["base_url"] = env["SOVCHAIN_BASE_URL"]
        if env.get("SOVCHAIN_GNUPG_HOME"):
            values["gnupg_home"] = env["SOVCHAIN_GNUPG_HOME"]
        connect = _env_int(env, "SOVCHAIN_CONNECT_TIMEOUT")
        if connect:
            values["connect_timeout"] = connect
        read = _env_int(env, "SOVCHAIN_READ_TIMEOUT")
        if read:
            values["read_timeout"] = read
        keyservers = _env_list(env, "SOVCHAIN_KEYSERVERS")
        if keyservers:
            values["keyservers"] = keyservers

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

"""
Subprocess wrapper around the gpg binary.

All OpenPGP work (key retrieval, signature math, keyring management) is
delegated to gpg; this module only builds command lines and captures
output. The runner is injectable so tests never spawn gpg.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..core.errors import DependencyMissing

logger = logging.getLogger(__name__)


@dataclass
class GpgOutput:
    """Captured result of one gpg invocation."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return f"{self.stdout}\n{self.stderr}"


class Gpg:
    """
    Minimal gpg front end.

    Args:
        binary: gpg executable name or path
        homedir: Optional isolated home directory (--homedir)
        timeout: Seconds before a gpg call is abandoned
        runner: subprocess.run-compatible callable
        which: shutil.which-compatible callable
    """

    def __init__(self, binary: str = "gpg", homedir: Optional[str] = None, timeout: int = 60,
                 runner: Callable = subprocess.run, which: Callable = shutil.which):
        self.binary = binary
        self.homedir = homedir
        self.timeout = timeout
        self._runner = runner
        self._which = which

    @classmethod
    def from_config(cls, config, **kwargs) -> "Gpg":
        return cls(homedir=config.gnupg_home, timeout=config.connect_timeout * 2, **kwargs)

    def available(self) -> bool:
        return self._which(self.binary) is not None

    def _command(self, args: List[str]) -> List[str]:
        command = [self.binary, "--batch"]
        if self.homedir:
            command += ["--homedir", self.homedir]
        return command + list(args)

    def run(self, args: List[str]) -> GpgOutput:
        """
        Run gpg with args (prefixed by --batch and --homedir).

        A timeout is reported as a failed invocation, not raised.

        Raises:
            DependencyMissing: gpg binary not found
        """
        command = self._command(args)
        logger.debug("Running: %s", " ".join(command))
        try:
            result = self._runner(command, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as ex:
            raise DependencyMissing(f"`{self.binary}` binary not found") from ex
        except subprocess.TimeoutExpired:
            logger.warning("gpg timed out after %ss: %s", self.timeout, " ".join(args))
            return GpgOutput(returncode=-1, stdout="", stderr="timeout")
        return GpgOutput(result.returncode, result.stdout or "", result.stderr or "")

    def recv_key(self, keyserver: str, key_id: str) -> bool:
        """Import one key from one keyserver. True on success."""
        out = self.run(["--keyserver", keyserver, "--recv-keys", key_id])
        if not out.ok:
            logger.debug("recv-keys %s from %s failed: %s", key_id, keyserver, out.stderr.strip())
        return out.ok

    def verify_detached(self, signature: str, data: str) -> GpgOutput:
        """Verify a detached signature with machine-readable status output."""
        return self.run(["--status-fd", "1", "--verify", signature, data])

    def has_key(self, key_id: str) -> bool:
        return self.run(["--list-keys", key_id]).ok

    def delete_key(self, key_id: str) -> bool:
        """Remove a public key from the keyring. True on success."""
        out = self.run(["--yes", "--delete-keys", key_id])
        if not out.ok:
            logger.warning("Failed to delete key %s: %s", key_id, out.stderr.strip())
        return out.ok

"""
Artifact discovery from a mirror directory listing.

The listing is an HTML (or plain) index page. Every filename matching the
artifact pattern is a candidate; the highest version wins, compared as a
tuple of integers so that 12.10.0 sorts above 12.9.0.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..core.errors import DiscoveryError, NetworkError

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"-(\d+(?:\.\d+)*)-")


@dataclass(frozen=True)
class DiscoveredArtifact:
    """Name, version and download URL of the selected artifact."""
    name: str
    version: str
    url: str


def parse_version(name: str) -> str:
    """Version string embedded in an artifact name (``debian-12.9.0-amd64...`` -> ``12.9.0``)."""
    match = VERSION_RE.search(name)
    return match.group(1) if match else ""


def version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split(".") if part.isdigit())


def find_candidates(listing: str, pattern: str) -> List[str]:
    """Distinct artifact names in a listing, in order of first appearance."""
    seen = []
    for name in re.findall(pattern, listing):
        if name not in seen:
            seen.append(name)
    return seen


def select_latest(names: List[str]) -> Optional[str]:
    if not names:
        return None
    return max(names, key=lambda n: (version_key(parse_version(n)), n))


class ArtifactDiscovery:
    """Resolve the latest artifact published under a base URL."""

    def __init__(self, config, http):
        self.config = config
        self.http = http

    def discover(self, base_url: Optional[str] = None) -> DiscoveredArtifact:
        """
        Fetch the listing and pick the highest-versioned artifact.

        Args:
            base_url: Listing URL (default: config.base_url)

        Returns:
            DiscoveredArtifact

        Raises:
            DiscoveryError: Listing unreachable or no matching artifact
        """
        base_url = base_url or self.config.base_url
        if not base_url.endswith("/"):
            base_url += "/"

        logger.info("Discovering latest artifact at %s", base_url)
        try:
            listing = self.http.get_text(base_url)
        except NetworkError as ex:
            raise DiscoveryError(f"listing unreachable: {ex}") from ex

        candidates = find_candidates(listing, self.config.artifact_pattern)
        latest = select_latest(candidates)
        if latest is None:
            raise DiscoveryError(
                f"no artifact matching {self.config.artifact_pattern!r} at {base_url}"
            )

        version = parse_version(latest)
        logger.info("Found %s (version %s, %d candidate(s))", latest, version or "unknown", len(candidates))
        return DiscoveredArtifact(name=latest, version=version, url=f"{base_url}{latest}")

"""
Network layer: bounded HTTP, artifact discovery, resumable downloads.
"""

from .http import HttpClient
from .discovery import ArtifactDiscovery, DiscoveredArtifact, parse_version, version_key
from .fetcher import ResumableFetcher, FetchResult, TEMP_SUFFIX

__all__ = [
    "HttpClient",
    "ArtifactDiscovery",
    "DiscoveredArtifact",
    "parse_version",
    "version_key",
    "ResumableFetcher",
    "FetchResult",
    "TEMP_SUFFIX",
]

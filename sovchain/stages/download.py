"""
download-host: discover, fetch and checksum-verify the latest artifact.
"""

from typing import Optional

from .base import Stage, DOWNLOAD_STAGE
from ..checkpoint import ArtifactRecord, Checkpoint, StageResult
from ..core.units import human_size
from ..net import ArtifactDiscovery, HttpClient, ResumableFetcher
from ..verify import ChecksumVerifier


class DownloadStage(Stage):
    """
    First pipeline stage.

    A checksum mismatch always aborts. A missing manifest entry aborts
    unless force is set, in which case the artifact is recorded with
    verified=false.
    """

    name = DOWNLOAD_STAGE

    def __init__(self, config, store=None, http: Optional[HttpClient] = None):
        super().__init__(config, store)
        self.http = http or HttpClient.from_config(config)
        self.discovery = ArtifactDiscovery(config, self.http)
        self.fetcher = ResumableFetcher(self.http, chunk_size=config.chunk_size)
        self.checksums = ChecksumVerifier(config, self.fetcher)

    def execute(self) -> Checkpoint:
        config = self.config
        config.workpath.mkdir(parents=True, exist_ok=True)

        artifact = self.discovery.discover(config.base_url)
        fetched = self.fetcher.fetch(artifact.url, config.workpath / artifact.name)
        if fetched.downloaded:
            self.log.info(
                "Fetched %s: %d bytes transferred%s",
                artifact.name, fetched.bytes_transferred, " (resumed)" if fetched.resumed else "",
            )

        result = self.checksums.verify(fetched.path)
        if not result.verified:
            if result.hard_failure or not config.force:
                result.raise_for_status(stage=self.name)
            self.log.warning("Checksum not verified for %s (%s); continuing because of --force",
                             artifact.name, result.reason)

        record = ArtifactRecord(
            type=config.artifact_type,
            sha256=result.digests["sha256"],
            sha512=result.digests.get("sha512"),
            url=artifact.url,
            version=artifact.version,
            verified=result.verified,
            checksum_file=result.manifest,
            location=str(config.workpath),
            size_bytes=fetched.size_bytes,
            extra={"size_human": human_size(fetched.size_bytes)},
        )
        stage_result = StageResult(
            step=self.name,
            step_number=self.step_number,
            verified=result.verified,
            artifacts={artifact.name: record},
            metadata={
                "base_url": config.base_url,
                "download_completed": self.store.clock.timestamp(),
            },
        )
        return self.store.save(self.store.path_for(self.name), None, stage_result)

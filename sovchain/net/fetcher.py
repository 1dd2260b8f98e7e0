"""
Resumable, atomic download.

Guarantees:
- The final filename only ever holds a complete transfer (temp file +
  os.replace)
- An existing file is kept only when its size equals the remote
  Content-Length; otherwise it is replaced
- A leftover ``<name>.downloading`` from an interrupted run is resumed with
  an HTTP Range request when the server supports it
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import requests

from ..core.errors import NetworkError, SizeMismatch

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".downloading"


@dataclass
class FetchResult:
    """
    Outcome of a fetch.

    Fields:
        path: Final artifact path
        downloaded: False when an existing file was kept
        bytes_transferred: Bytes received in this call
        size_bytes: Final file size
        resumed: Transfer continued a partial temp file
    """
    path: Path
    downloaded: bool
    bytes_transferred: int
    size_bytes: int
    resumed: bool = False


def temp_path_for(target: Path) -> Path:
    return target.with_name(target.name + TEMP_SUFFIX)


def _total_size(response: requests.Response, offset: int) -> Optional[int]:
    # 206: "Content-Range: bytes 100-999/1000"; 200: Content-Length.
    if response.status_code == 206:
        content_range = response.headers.get("Content-Range", "")
        _, _, total = content_range.rpartition("/")
        if total.isdigit():
            return int(total)
        length = response.headers.get("Content-Length")
        return offset + int(length) if length and length.isdigit() else None
    length = response.headers.get("Content-Length")
    return int(length) if length and length.isdigit() else None


class ResumableFetcher:
    """Download files atomically with size re-validation."""

    def __init__(self, http, chunk_size: int = 1024 * 1024):
        self.http = http
        self.chunk_size = chunk_size

    def check_existing(self, url: str, target: Path) -> None:
        """
        Validate an existing file against the remote size.

        Raises:
            SizeMismatch: Sizes differ or the remote size is unknown
        """
        local_size = target.stat().st_size
        remote_size = self.http.content_length(url)
        if remote_size is None:
            raise SizeMismatch(
                f"remote size unknown, cannot verify local {local_size} bytes",
                artifact=target.name,
            )
        if remote_size != local_size:
            raise SizeMismatch(
                f"local {local_size} bytes != remote {remote_size} bytes",
                artifact=target.name,
            )

    def fetch(self, url: str, target: Union[str, Path], refresh: bool = False) -> FetchResult:
        """
        Ensure target holds the complete remote file.

        With refresh, an existing file is replaced unconditionally; it stays
        in place until the new transfer completes.

        Args:
            url: Remote file URL
            target: Final local path
            refresh: Download even when the local size matches

        Returns:
            FetchResult (downloaded=False when an existing file was kept)

        Raises:
            NetworkError: Transfer failed (the temp file is removed)
        """
        target = Path(target)
        if refresh:
            self._discard(temp_path_for(target))
        elif target.is_file():
            try:
                self.check_existing(url, target)
            except SizeMismatch as ex:
                logger.warning("%s; re-downloading", ex)
                target.unlink()
            else:
                size = target.stat().st_size
                logger.info("%s already present, size verified (%d bytes)", target.name, size)
                return FetchResult(path=target, downloaded=False, bytes_transferred=0, size_bytes=size)

        return self._download(url, target)

    def _download(self, url: str, target: Path) -> FetchResult:
        tmp = temp_path_for(target)
        offset = tmp.stat().st_size if tmp.is_file() else 0
        if offset:
            logger.info("Resuming %s from byte %d", target.name, offset)
        else:
            logger.info("Downloading %s", url)

        transferred = 0
        resumed = False
        try:
            response, offset = self._open(url, tmp, offset)
            with response:
                resumed = offset > 0
                mode = "ab" if resumed else "wb"
                total = _total_size(response, offset)
                with open(tmp, mode) as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            transferred += len(chunk)
                    f.flush()
                    os.fsync(f.fileno())
        except (requests.exceptions.RequestException, OSError) as ex:
            self._discard(tmp)
            raise NetworkError(f"transfer of {url} failed: {ex}", artifact=target.name) from ex
        except NetworkError:
            self._discard(tmp)
            raise

        size = tmp.stat().st_size
        if total is not None and size != total:
            self._discard(tmp)
            raise NetworkError(
                f"incomplete transfer: {size} of {total} bytes", artifact=target.name
            )

        os.replace(tmp, target)
        logger.info("Downloaded %s (%d bytes)", target.name, size)
        return FetchResult(
            path=target,
            downloaded=True,
            bytes_transferred=transferred,
            size_bytes=size,
            resumed=resumed,
        )

    def _open(self, url: str, tmp: Path, offset: int):
        response = self.http.open_stream(url, start=offset)
        if offset and response.status_code == 416:
            response.close()
            logger.warning("Server rejected resume of %s; restarting", tmp.name)
            tmp.unlink()
            return self.http.open_stream(url), 0
        if offset and response.status_code != 206:
            # Server ignored the Range header and sent the whole body.
            offset = 0
        return response, offset

    @staticmethod
    def _discard(tmp: Path) -> None:
        if tmp.exists():
            tmp.unlink()

"""
HTTP access with bounded timeouts.

Every request carries a (connect, read) timeout tuple; there are no
unbounded network calls anywhere in the pipeline.
"""

import logging
from typing import Optional

import requests

from .. import __version__
from ..core.errors import NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = f"sovereignty-chain/{__version__}"


class HttpClient:
    """
    Thin wrapper over requests.Session.

    Translates transport failures into NetworkError and exposes the three
    operations the pipeline needs: fetch a text listing, probe a remote
    size, stream a (possibly ranged) body.
    """

    def __init__(self, connect_timeout: int = 30, read_timeout: int = 3600,
                 session: Optional[requests.Session] = None):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> "HttpClient":
        return cls(config.connect_timeout, config.read_timeout, session=session)

    @property
    def timeout(self):
        return (self.connect_timeout, self.read_timeout)

    def get_text(self, url: str) -> str:
        """
        GET a small text document (directory listing, manifest).

        Raises:
            NetworkError: Transport failure or non-2xx status
        """
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as ex:
            raise NetworkError(f"GET {url} failed: {ex}") from ex
        return response.text

    def content_length(self, url: str) -> Optional[int]:
        """
        Authoritative remote size from a HEAD request.

        Returns:
            Size in bytes, or None when the HEAD failed or carried no
            usable Content-Length
        """
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as ex:
            logger.debug("HEAD %s failed: %s", url, ex)
            return None
        value = response.headers.get("Content-Length")
        if value is None:
            return None
        try:
            size = int(value)
        except ValueError:
            return None
        return size if size >= 0 else None

    def open_stream(self, url: str, start: int = 0) -> requests.Response:
        """
        Open a streamed GET, optionally from a byte offset.

        The caller owns the returned response and must close it (it is a
        context manager). A 416 answer to a ranged request is returned
        rather than raised so the caller can restart from zero.

        Raises:
            NetworkError: Transport failure or error status
        """
        headers = {}
        if start > 0:
            headers["Range"] = f"bytes={start}-"
        logger.debug("GET %s (stream, offset=%d)", url, start)
        try:
            response = self.session.get(url, headers=headers, stream=True, timeout=self.timeout)
        except requests.exceptions.RequestException as ex:
            raise NetworkError(f"GET {url} failed: {ex}") from ex

        if start > 0 and response.status_code == 416:
            return response
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as ex:
            response.close()
            raise NetworkError(f"GET {url} failed: {ex}") from ex
        return response

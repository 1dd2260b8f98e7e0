"""
Tests for the resumable fetcher.

Critical tests:
1. Second fetch of an unchanged file transfers zero bytes
2. Size mismatch or unknown remote size triggers a re-download
3. Partial temp files are resumed with Range, or restarted
4. Failed transfers never leave a final file or a temp file
"""

import pytest

from sovchain.core.errors import NetworkError
from sovchain.net import HttpClient, ResumableFetcher, TEMP_SUFFIX
from sovchain.tests.fakes import BASE_URL, FakeMirror

NAME = "debian-12.9.0-amd64-netinst.iso"
BODY = bytes(range(256)) * 40


def _fetcher(mirror: FakeMirror) -> ResumableFetcher:
    return ResumableFetcher(HttpClient(session=mirror), chunk_size=1000)


def test_fresh_download(tmp_path):
    mirror = FakeMirror({NAME: BODY})
    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert result.downloaded
    assert result.bytes_transferred == len(BODY)
    assert (tmp_path / NAME).read_bytes() == BODY
    assert not (tmp_path / (NAME + TEMP_SUFFIX)).exists()


def test_second_fetch_transfers_zero_bytes(tmp_path):
    mirror = FakeMirror({NAME: BODY})
    fetcher = _fetcher(mirror)
    fetcher.fetch(BASE_URL + NAME, tmp_path / NAME)

    again = fetcher.fetch(BASE_URL + NAME, tmp_path / NAME)

    assert not again.downloaded
    assert again.bytes_transferred == 0
    assert again.size_bytes == len(BODY)
    assert mirror.requested("GET", NAME) == 1


def test_size_mismatch_redownloads(tmp_path):
    (tmp_path / NAME).write_bytes(BODY[:100])
    mirror = FakeMirror({NAME: BODY})

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert result.downloaded
    assert (tmp_path / NAME).read_bytes() == BODY


def test_unknown_remote_size_redownloads(tmp_path):
    """A HEAD without usable Content-Length cannot confirm the local file."""
    (tmp_path / NAME).write_bytes(BODY)
    mirror = FakeMirror({NAME: BODY}, head_ok=False)

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert result.downloaded
    assert result.bytes_transferred == len(BODY)


def test_resume_partial_temp_file(tmp_path):
    (tmp_path / (NAME + TEMP_SUFFIX)).write_bytes(BODY[:4000])
    mirror = FakeMirror({NAME: BODY})

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert result.resumed
    assert result.bytes_transferred == len(BODY) - 4000
    assert (tmp_path / NAME).read_bytes() == BODY
    assert mirror.calls[-1][2] == {"Range": "bytes=4000-"}


def test_server_without_range_restarts(tmp_path):
    (tmp_path / (NAME + TEMP_SUFFIX)).write_bytes(b"stale" * 100)
    mirror = FakeMirror({NAME: BODY}, support_range=False)

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert not result.resumed
    assert (tmp_path / NAME).read_bytes() == BODY


def test_oversized_temp_file_restarts(tmp_path):
    """A 416 answer to the Range request restarts from zero."""
    (tmp_path / (NAME + TEMP_SUFFIX)).write_bytes(BODY + b"junk")
    mirror = FakeMirror({NAME: BODY})

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert (tmp_path / NAME).read_bytes() == BODY
    assert result.bytes_transferred == len(BODY)


def test_interrupted_transfer_cleans_up(tmp_path):
    mirror = FakeMirror({NAME: BODY})
    mirror.fail_after[NAME] = 3000

    with pytest.raises(NetworkError):
        _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert not (tmp_path / NAME).exists()
    assert not (tmp_path / (NAME + TEMP_SUFFIX)).exists()


def test_truncated_body_is_not_promoted(tmp_path):
    mirror = FakeMirror({NAME: BODY})
    mirror.short_body[NAME] = 5000

    with pytest.raises(NetworkError, match="incomplete transfer"):
        _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)

    assert not (tmp_path / NAME).exists()
    assert not (tmp_path / (NAME + TEMP_SUFFIX)).exists()


def test_missing_remote_file_raises(tmp_path):
    mirror = FakeMirror({})
    with pytest.raises(NetworkError, match="404"):
        _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME)
    assert not (tmp_path / NAME).exists()


def test_refresh_replaces_same_size_file(tmp_path):
    (tmp_path / NAME).write_bytes(b"\0" * len(BODY))
    mirror = FakeMirror({NAME: BODY})

    result = _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME, refresh=True)

    assert result.downloaded
    assert (tmp_path / NAME).read_bytes() == BODY
    assert mirror.requested("HEAD", NAME) == 0


def test_failed_refresh_keeps_existing_file(tmp_path):
    (tmp_path / NAME).write_bytes(b"old contents")
    mirror = FakeMirror({NAME: BODY})
    mirror.down = True

    with pytest.raises(NetworkError):
        _fetcher(mirror).fetch(BASE_URL + NAME, tmp_path / NAME, refresh=True)

    assert (tmp_path / NAME).read_bytes() == b"old contents"
    assert not (tmp_path / (NAME + TEMP_SUFFIX)).exists()

from __future__ import annotations

from pathlib import Path

import pytest
import requests

from conftest import FakeResponse, FakeSession, make_docker_tgz
from panel_offline.lib.download import Downloader, DownloadError
from panel_offline.lib.resolver import Candidate

URL_A = "https://example.invalid/a.tgz"
URL_B = "https://example.invalid/b.tgz"


def _downloader(session: FakeSession, **kw) -> Downloader:
    kw.setdefault("retry_delay", 0)
    return Downloader(session=session, sleep=lambda _s: None, **kw)


def test_valid_cache_is_reused_without_network(tmp_path):
    dest = tmp_path / "docker.tgz"
    dest.write_bytes(make_docker_tgz())
    session = FakeSession()

    res = _downloader(session).fetch([Candidate("1", URL_A, dest)], kind="archive")

    assert res.path == dest and res.cached
    assert session.calls == []


def test_corrupt_cached_archive_is_replaced(tmp_path):
    dest = tmp_path / "docker.tgz"
    good = make_docker_tgz()
    dest.write_bytes(good[: len(good) // 2])
    session = FakeSession({URL_A: good})
    dl = _downloader(session)

    res = dl.fetch([Candidate("1", URL_A, dest)], kind="archive")

    assert not res.cached
    assert dest.read_bytes() == good
    assert dl.downloads == 1


def test_small_binary_is_rejected_on_disk_and_after_download(tmp_path):
    dest = tmp_path / "docker-compose"
    dest.write_bytes(b"x" * 10)
    session = FakeSession({URL_A: b"y" * 50})

    with pytest.raises(DownloadError):
        _downloader(session).fetch([Candidate("1", URL_A, dest)], kind="binary", min_size=100)

    assert not dest.exists()
    assert not dest.with_name(dest.name + ".part").exists()


def test_falls_through_candidates_in_order(tmp_path):
    dest = tmp_path / "docker.tgz"
    session = FakeSession({URL_A: b"<html>not found</html>", URL_B: make_docker_tgz()})

    res = _downloader(session).fetch(
        [Candidate("1", URL_A, dest), Candidate("1", URL_B, dest)], kind="archive"
    )

    assert res.url == URL_B
    assert session.calls == [URL_A, URL_B]


def test_primary_version_is_tried_before_cached_fallback(tmp_path):
    primary = tmp_path / "docker-27.tgz"
    fallback = tmp_path / "docker-26.tgz"
    fallback.write_bytes(make_docker_tgz())
    session = FakeSession({URL_A: make_docker_tgz()})

    res = _downloader(session).fetch(
        [Candidate("27", URL_A, primary), Candidate("26", URL_B, fallback)], kind="archive"
    )

    assert res.version == "27" and not res.cached
    assert session.calls == [URL_A]


def test_cached_fallback_is_reused_once_primary_fails(tmp_path):
    primary = tmp_path / "docker-27.tgz"
    fallback = tmp_path / "docker-26.tgz"
    fallback.write_bytes(make_docker_tgz())
    session = FakeSession()

    res = _downloader(session).fetch(
        [Candidate("27", URL_A, primary), Candidate("26", URL_B, fallback)], kind="archive"
    )

    assert res.version == "26" and res.cached
    assert session.calls == [URL_A]


def test_server_errors_are_retried_but_404_is_not(tmp_path):
    good = make_docker_tgz()
    session = FakeSession({URL_A: [503, requests.ConnectionError("reset"), good], URL_B: 404})
    dl = _downloader(session, retries=3)

    assert dl.fetch([Candidate("1", URL_A, tmp_path / "a.tgz")], kind="archive").path.exists()
    assert session.calls.count(URL_A) == 3

    with pytest.raises(DownloadError):
        dl.fetch([Candidate("1", URL_B, tmp_path / "b.tgz")], kind="archive")
    assert session.calls.count(URL_B) == 1


def test_retries_are_bounded(tmp_path):
    session = FakeSession({URL_A: 500})
    delays = []
    dl = Downloader(session=session, retries=2, retry_delay=2, sleep=delays.append)

    with pytest.raises(DownloadError):
        dl.fetch([Candidate("1", URL_A, tmp_path / "a.tgz")], kind="archive")

    assert session.calls == [URL_A] * 3
    assert delays == [2.0, 2.0]


def test_retry_resumes_partial_transfer(tmp_path):
    body = b"z" * 200
    state = {"n": 0}

    def route(headers):
        state["n"] += 1
        if state["n"] == 1:
            resp = FakeResponse(content=body[:120], headers={"content-length": "200"})

            def broken(chunk_size=1):
                yield body[:120]
                raise requests.ConnectionError("connection dropped")

            resp.iter_content = broken
            return resp
        assert headers.get("Range") == "bytes=120-"
        return FakeResponse(status_code=206, content=body[120:])

    session = FakeSession({URL_A: route})
    dest = tmp_path / "bin"

    _downloader(session).fetch([Candidate("1", URL_A, dest)], kind="binary", min_size=200)

    assert dest.read_bytes() == body


def test_empty_candidate_list_is_an_error(tmp_path):
    with pytest.raises(DownloadError):
        _downloader(FakeSession()).fetch([], kind="archive")

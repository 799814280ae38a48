from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import requests

from .archive import is_valid_tar
from .resolver import ArtifactKind, ArtifactPlan, Candidate

logger = logging.getLogger(__name__)


USER_AGENT = "panel-offline/1.0"


class DownloadError(RuntimeError):
    pass


class _TransferFailed(Exception):
    def __init__(self, message: str, *, retryable: bool) -> None:
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class FetchResult:
    path: Path
    version: str
    url: Optional[str]
    cached: bool


def verify_artifact(path: Path, kind: ArtifactKind, min_size: int = 0) -> bool:
    if not path.is_file():
        return False
    if kind == "archive":
        return is_valid_tar(path)
    size = path.stat().st_size
    return size > 0 and size >= min_size


def _group_by_version(candidates: Sequence[Candidate]) -> List[List[Candidate]]:
    groups: List[List[Candidate]] = []
    for c in candidates:
        if groups and groups[-1][0].version == c.version and groups[-1][0].destination == c.destination:
            groups[-1].append(c)
        else:
            groups.append([c])
    return groups


class Downloader:
    """Cache-aware, verifying downloader.

    A destination path is either absent or holds a file that passed
    verification; transfers land on `<dest>.part` and are moved in place
    only once verified.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 60,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session or requests.Session()
        self.retries = max(0, int(retries))
        self.retry_delay = float(retry_delay)
        self.timeout = timeout
        self._sleep = sleep
        self.cache_hits = 0
        self.downloads = 0

    def fetch_plan(self, plan: ArtifactPlan) -> FetchResult:
        return self.fetch(plan.candidates, kind=plan.kind, min_size=plan.min_size, name=plan.name)

    def fetch(
        self,
        candidates: Sequence[Candidate],
        *,
        kind: ArtifactKind,
        min_size: int = 0,
        name: str = "",
    ) -> FetchResult:
        """Return the first version that is cached or downloads and verifies.

        Versions are tried in order: a valid cache file for a version is
        reused, otherwise its URLs are tried before moving on.
        """

        if not candidates:
            raise DownloadError(f"No download candidates for {name or 'artifact'}")

        for group in _group_by_version(candidates):
            dest = group[0].destination
            if self._reuse(dest, kind, min_size):
                self.cache_hits += 1
                return FetchResult(path=dest, version=group[0].version, url=None, cached=True)
            for c in group:
                if self._download(c, kind, min_size):
                    self.downloads += 1
                    return FetchResult(path=c.destination, version=c.version, url=c.url, cached=False)

        tried = ", ".join(c.url for c in candidates)
        raise DownloadError(f"All candidates failed for {name or candidates[0].destination.name}: {tried}")

    def _reuse(self, dest: Path, kind: ArtifactKind, min_size: int) -> bool:
        if not dest.exists():
            return False
        if verify_artifact(dest, kind, min_size):
            logger.info("Reuse %s", dest)
            return True
        logger.warning("Cached %s looks invalid, re-downloading...", dest)
        dest.unlink()
        return False

    def _download(self, c: Candidate, kind: ArtifactKind, min_size: int) -> bool:
        dest = c.destination
        dest.parent.mkdir(parents=True, exist_ok=True)
        part = dest.with_name(dest.name + ".part")
        part.unlink(missing_ok=True)

        logger.info("Downloading %s", c.url)
        try:
            attempt = 0
            while True:
                try:
                    self._transfer(c.url, part)
                    break
                except _TransferFailed as e:
                    if not e.retryable or attempt >= self.retries:
                        logger.warning("Download failed for %s: %s", c.url, e)
                        return False
                    attempt += 1
                    logger.warning(
                        "Transfer of %s failed (%s), retry %s/%s in %.0fs",
                        c.url,
                        e,
                        attempt,
                        self.retries,
                        self.retry_delay,
                    )
                    self._sleep(self.retry_delay)

            if not verify_artifact(part, kind, min_size):
                if kind == "archive":
                    logger.warning("Archive from %s is invalid, removing it", c.url)
                else:
                    logger.warning("Downloaded file from %s is smaller than expected, removing it", c.url)
                return False

            part.replace(dest)
        finally:
            part.unlink(missing_ok=True)

        logger.info("Saved %s (%s bytes)", dest, dest.stat().st_size)
        return True

    def _transfer(self, url: str, part: Path) -> None:
        offset = part.stat().st_size if part.exists() else 0
        headers = {"User-Agent": USER_AGENT}
        if offset:
            headers["Range"] = f"bytes={offset}-"

        try:
            with self.session.get(url, headers=headers, stream=True, timeout=self.timeout) as r:
                status = int(r.status_code)
                if status == 429 or status >= 500:
                    raise _TransferFailed(f"HTTP {status}", retryable=True)
                if status == 416 and offset:
                    # Nothing left to fetch beyond what we already have.
                    return
                if status >= 400:
                    raise _TransferFailed(f"HTTP {status}", retryable=False)

                mode = "ab" if (offset and status == 206) else "wb"
                total = int(r.headers.get("content-length") or 0)
                done = 0
                next_mark = 25
                with part.open(mode) as f:
                    for chunk in r.iter_content(chunk_size=65536):
                        if not chunk:
                            continue
                        f.write(chunk)
                        done += len(chunk)
                        pct = done * 100 // total if total else 0
                        if pct >= next_mark:
                            logger.info("  %s%% of %s", pct, part.name[: -len(".part")])
                            next_mark = (pct // 25 + 1) * 25
        except requests.RequestException as e:
            raise _TransferFailed(str(e), retryable=True) from e

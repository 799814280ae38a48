from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)


OFFICIAL_BASE = "https://resource.fit2cloud.com/1panel/package/v2"
GITHUB_BASE = "https://github.com"
GITHUB_API = "https://api.github.com"

DEFAULT_CUSTOM_REPO = "1Panel-dev/1Panel"
CHANNELS = ("stable", "beta", "dev")
SOURCE_LABELS = ("official", "custom")


class SourceSelectionError(ValueError):
    pass


@dataclass(frozen=True)
class ReleaseSource:
    """Where application packages come from.

    `official` is the vendor's distribution host (channel aware), `custom`
    is a GitHub release repository (`owner/repo`) whose tags are versions.
    """

    label: str
    repo: Optional[str] = None

    def app_url(self, *, channel: str, version: str, app_arch: str) -> str:
        name = f"1panel-{version}-linux-{app_arch}.tar.gz"
        if self.label == "official":
            return f"{OFFICIAL_BASE}/{channel}/{version}/release/{name}"
        return f"{GITHUB_BASE}/{self.repo}/releases/download/{version}/{name}"


def resolve_sources(selection: str, *, repo: str = DEFAULT_CUSTOM_REPO) -> List[ReleaseSource]:
    sel = (selection or "").strip().lower()
    if sel == "both":
        labels = list(SOURCE_LABELS)
    elif sel in SOURCE_LABELS:
        labels = [sel]
    else:
        raise SourceSelectionError(f"Unknown source selection: {selection!r} (official|custom|both)")

    if "custom" in labels and (not repo or repo.count("/") != 1):
        raise SourceSelectionError(f"Custom repository must look like owner/repo, got {repo!r}")

    return [ReleaseSource(label=l, repo=repo if l == "custom" else None) for l in labels]


def lookup_latest_version(
    source: ReleaseSource,
    *,
    channel: str,
    session: Optional[requests.Session] = None,
    timeout: float = 30,
) -> str:
    """Ask the release source which version is current for `channel`."""

    http = session or requests.Session()
    if source.label == "official":
        url = f"{OFFICIAL_BASE}/{channel}/latest"
        resp = http.get(url, timeout=timeout)
        resp.raise_for_status()
        version = resp.text.strip()
    else:
        url = f"{GITHUB_API}/repos/{source.repo}/releases/latest"
        resp = http.get(url, timeout=timeout, headers={"Accept": "application/vnd.github+json"})
        resp.raise_for_status()
        version = str((resp.json() or {}).get("tag_name") or "").strip()

    if not version:
        raise RuntimeError(f"Failed to fetch latest version for mode: {channel} ({url})")

    logger.info("Latest %s version (%s): %s", channel, source.label, version)
    return version

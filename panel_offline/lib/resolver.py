from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional, Sequence, Tuple

from .arch import ArchitectureProfile
from .sources import GITHUB_BASE, ReleaseSource

logger = logging.getLogger(__name__)


ArtifactKind = Literal["archive", "binary"]

DOCKER_STATIC_URL = "https://download.docker.com/linux/static/stable/{docker_arch}/docker-{version}.tgz"
COMPOSE_RELEASE_URL = GITHUB_BASE + "/docker/compose/releases/download/{version}/docker-compose-linux-{compose_arch}"

_COMMUNITY_DOCKER = (
    GITHUB_BASE
    + "/wojiushixiaobai/docker-ce-binaries-{docker_arch}/releases/download/v{version}/docker-{version}.tgz"
)

# Architectures the upstream static builds cover poorly.
DOCKER_MIRRORS: Dict[str, Tuple[str, ...]] = {
    "ppc64le": (_COMMUNITY_DOCKER,),
    "s390x": (_COMMUNITY_DOCKER,),
    "riscv64": (_COMMUNITY_DOCKER,),
    "loong64": (
        GITHUB_BASE + "/loong64/docker-ce-packaging/releases/download/v{version}/docker-{version}.tgz",
        _COMMUNITY_DOCKER,
    ),
}

COMPOSE_MIRRORS: Dict[str, Tuple[str, ...]] = {
    "loong64": (GITHUB_BASE + "/loong64/compose/releases/download/{version}/docker-compose-linux-loong64",),
}

COMPOSE_SPARSE_ARCHES = frozenset({"ppc64le", "s390x", "armv7", "riscv64", "loong64"})

DEFAULT_DOCKER_VERSION = "24.0.7"
DEFAULT_DOCKER_FALLBACKS = ("23.0.6", "20.10.24")
DEFAULT_COMPOSE_VERSION = "v2.23.0"
DEFAULT_COMPOSE_FALLBACK = "v2.20.3"
DEFAULT_COMPOSE_MIN_SIZE = 8_000_000
DEFAULT_SQLITE_VERSION = "3.46.1"
DEFAULT_SQLITE_URL = GITHUB_BASE + "/{repo}/releases/download/sqlite3-{version}/sqlite3-linux-{arch}"
DEFAULT_SQLITE_MIN_SIZE = 100_000


@dataclass(frozen=True)
class Candidate:
    version: str
    url: str
    destination: Path


@dataclass(frozen=True)
class ArtifactPlan:
    """Everything the downloader needs to obtain one logical artifact.

    `candidates` is ordered by preference: versions outer, URLs inner.
    """

    name: str
    kind: ArtifactKind
    candidates: Tuple[Candidate, ...]
    min_size: int = 0
    optional: bool = False

    @property
    def versions(self) -> List[str]:
        out: List[str] = []
        for c in self.candidates:
            if c.version not in out:
                out.append(c.version)
        return out


def normalize_docker_version(version: str) -> str:
    """`docker-v29.0.2` / `v29.0.2` -> `29.0.2`"""
    v = version.strip()
    if v.startswith("docker-"):
        v = v[len("docker-"):]
    if v.startswith("v"):
        v = v[1:]
    return v


def _unique(items: Sequence[str]) -> List[str]:
    out: List[str] = []
    for i in items:
        if i and i not in out:
            out.append(i)
    return out


@dataclass(frozen=True)
class ArtifactResolver:
    cache_dir: Path
    channel: str = "stable"
    docker_version: str = DEFAULT_DOCKER_VERSION
    docker_fallback_versions: Tuple[str, ...] = DEFAULT_DOCKER_FALLBACKS
    docker_mirrors: Mapping[str, Sequence[str]] = field(default_factory=lambda: dict(DOCKER_MIRRORS))
    compose_version: str = DEFAULT_COMPOSE_VERSION
    compose_fallback_version: Optional[str] = DEFAULT_COMPOSE_FALLBACK
    compose_min_size: int = DEFAULT_COMPOSE_MIN_SIZE
    sqlite_version: str = DEFAULT_SQLITE_VERSION
    sqlite_url_template: str = DEFAULT_SQLITE_URL
    sqlite_repo: str = ""
    sqlite_min_size: int = DEFAULT_SQLITE_MIN_SIZE

    def app_package(self, source: ReleaseSource, profile: ArchitectureProfile, version: str) -> ArtifactPlan:
        url = source.app_url(channel=self.channel, version=version, app_arch=profile.app_arch)
        dest = self.cache_dir / f"1panel-{version}-{source.label}-linux-{profile.app_arch}.tar.gz"
        return ArtifactPlan(
            name=f"1panel {version} ({source.label})",
            kind="archive",
            candidates=(Candidate(version=version, url=url, destination=dest),),
        )

    def runtime_package(self, profile: ArchitectureProfile) -> ArtifactPlan:
        primary = normalize_docker_version(self.docker_version)
        mirrors = list(self.docker_mirrors.get(profile.tag) or [])
        versions = [primary]
        if mirrors:
            versions += [normalize_docker_version(v) for v in self.docker_fallback_versions]

        candidates: List[Candidate] = []
        for ver in _unique(versions):
            dest = self.cache_dir / f"docker-{ver}-{profile.docker_arch}.tgz"
            urls = [t.format(version=ver, docker_arch=profile.docker_arch) for t in mirrors]
            # Upstream static build is always the last resort for a version.
            urls.append(DOCKER_STATIC_URL.format(version=ver, docker_arch=profile.docker_arch))
            for url in _unique(urls):
                candidates.append(Candidate(version=ver, url=url, destination=dest))

        return ArtifactPlan(name=f"docker ({profile.docker_arch})", kind="archive", candidates=tuple(candidates))

    def compose_binary(self, profile: ArchitectureProfile) -> ArtifactPlan:
        versions = [self.compose_version]
        if profile.tag in COMPOSE_SPARSE_ARCHES and self.compose_fallback_version:
            versions.append(self.compose_fallback_version)

        candidates: List[Candidate] = []
        for ver in _unique(versions):
            dest = self.cache_dir / f"docker-compose-{ver}-{profile.compose_arch}"
            urls = [COMPOSE_RELEASE_URL.format(version=ver, compose_arch=profile.compose_arch)]
            urls += [t.format(version=ver) for t in COMPOSE_MIRRORS.get(profile.tag, ())]
            for url in _unique(urls):
                candidates.append(Candidate(version=ver, url=url, destination=dest))

        return ArtifactPlan(
            name=f"docker-compose ({profile.compose_arch})",
            kind="binary",
            candidates=tuple(candidates),
            min_size=self.compose_min_size,
        )

    def sqlite_client(self, profile: ArchitectureProfile) -> Optional[ArtifactPlan]:
        if not profile.sqlite_arch:
            return None
        if "{repo}" in self.sqlite_url_template and not self.sqlite_repo:
            return None
        url = self.sqlite_url_template.format(
            repo=self.sqlite_repo, version=self.sqlite_version, arch=profile.sqlite_arch
        )
        dest = self.cache_dir / f"sqlite3-{self.sqlite_version}-{profile.sqlite_arch}"
        return ArtifactPlan(
            name=f"sqlite3 ({profile.sqlite_arch})",
            kind="binary",
            candidates=(Candidate(version=self.sqlite_version, url=url, destination=dest),),
            min_size=self.sqlite_min_size,
            optional=True,
        )

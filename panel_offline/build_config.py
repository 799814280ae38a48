from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .lib.resolver import (
    DEFAULT_COMPOSE_FALLBACK,
    DEFAULT_COMPOSE_MIN_SIZE,
    DEFAULT_COMPOSE_VERSION,
    DEFAULT_DOCKER_FALLBACKS,
    DEFAULT_DOCKER_VERSION,
    DEFAULT_SQLITE_MIN_SIZE,
    DEFAULT_SQLITE_URL,
    DEFAULT_SQLITE_VERSION,
    DOCKER_MIRRORS,
    ArtifactResolver,
    normalize_docker_version,
)
from .lib.sources import CHANNELS, DEFAULT_CUSTOM_REPO

DEFAULT_ARCHES = ("amd64", "arm64", "armv7", "ppc64le", "s390x")


class ConfigError(ValueError):
    pass


def split_arch_list(values: Any) -> List[str]:
    """Accept "amd64,arm64", "amd64 arm64" or a list of either."""

    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for v in values:
        for part in re.split(r"[,\s]+", str(v)):
            if part and part not in out:
                out.append(part)
    return out


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any]

    @property
    def channel(self) -> str:
        ch = str(self.raw.get("channel") or "stable")
        if ch not in CHANNELS:
            raise ConfigError(f"Unknown mode: {ch} (expected one of {', '.join(CHANNELS)})")
        return ch

    @property
    def app_version(self) -> Optional[str]:
        v = self.raw.get("app_version")
        return str(v).strip() if v else None

    @property
    def confirm(self) -> bool:
        return bool(self.raw.get("confirm", False))

    @property
    def sources(self) -> str:
        return str(self.raw.get("sources") or "official")

    @property
    def custom_repo(self) -> str:
        return str(self.raw.get("custom_repo") or DEFAULT_CUSTOM_REPO)

    @property
    def arches(self) -> List[str]:
        arches = split_arch_list(self.raw.get("arches"))
        return arches or list(DEFAULT_ARCHES)

    @property
    def allow_missing(self) -> bool:
        return bool(self.raw.get("allow_missing", False))

    @property
    def strict_patch(self) -> bool:
        return bool(_section(self.raw, "patch").get("strict", True))

    @property
    def build_root(self) -> Path:
        return Path(str(_section(self.raw, "paths").get("build_root") or "build"))

    @property
    def cache_dir(self) -> Path:
        p = _section(self.raw, "paths").get("cache_dir")
        return Path(str(p)) if p else self.build_root / "cache"

    @property
    def log_path(self) -> str:
        p = _section(self.raw, "paths").get("log")
        return str(p) if p else str(self.build_root / "logs" / "offline-build.log")

    @property
    def docker_version(self) -> str:
        return normalize_docker_version(str(_section(self.raw, "runtime").get("version") or DEFAULT_DOCKER_VERSION))

    @property
    def docker_fallback_versions(self) -> Tuple[str, ...]:
        v = _section(self.raw, "runtime").get("fallback_versions")
        if v is None:
            return DEFAULT_DOCKER_FALLBACKS
        return tuple(str(x) for x in v)

    @property
    def docker_mirrors(self) -> Dict[str, Tuple[str, ...]]:
        mirrors = dict(DOCKER_MIRRORS)
        for arch, templates in (_section(self.raw, "runtime").get("mirrors") or {}).items():
            mirrors[str(arch)] = tuple(str(t) for t in (templates or []))
        return mirrors

    @property
    def compose_version(self) -> str:
        return str(_section(self.raw, "compose").get("version") or DEFAULT_COMPOSE_VERSION)

    @property
    def compose_fallback_version(self) -> Optional[str]:
        c = _section(self.raw, "compose")
        if "fallback_version" in c:
            return str(c["fallback_version"]) if c["fallback_version"] else None
        return DEFAULT_COMPOSE_FALLBACK

    @property
    def compose_min_size(self) -> int:
        return int(_section(self.raw, "compose").get("min_size", DEFAULT_COMPOSE_MIN_SIZE))

    @property
    def sqlite_version(self) -> str:
        return str(_section(self.raw, "sqlite").get("version") or DEFAULT_SQLITE_VERSION)

    @property
    def sqlite_repo(self) -> str:
        return str(_section(self.raw, "sqlite").get("repo") or "")

    @property
    def sqlite_url_template(self) -> str:
        return str(_section(self.raw, "sqlite").get("url_template") or DEFAULT_SQLITE_URL)

    @property
    def sqlite_min_size(self) -> int:
        return int(_section(self.raw, "sqlite").get("min_size", DEFAULT_SQLITE_MIN_SIZE))

    @property
    def download_retries(self) -> int:
        return int(_section(self.raw, "download").get("retries", 3))

    @property
    def download_retry_delay(self) -> float:
        return float(_section(self.raw, "download").get("retry_delay", 2))

    @property
    def download_timeout(self) -> float:
        return float(_section(self.raw, "download").get("timeout", 60))

    def with_overrides(self, overrides: Mapping[str, Any]) -> "BuildConfig":
        """Return a copy with dotted keys (e.g. 'runtime.version') replaced.

        None values are ignored so unset CLI flags don't clobber YAML.
        """

        raw: Dict[str, Any] = {k: (dict(v) if isinstance(v, Mapping) else v) for k, v in self.raw.items()}
        for key, value in overrides.items():
            if value is None:
                continue
            head, _, tail = key.partition(".")
            if tail:
                section = raw.get(head)
                if not isinstance(section, dict):
                    section = {}
                    raw[head] = section
                section[tail] = value
            else:
                raw[head] = value
        return BuildConfig(raw=raw)

    def make_resolver(self) -> ArtifactResolver:
        return ArtifactResolver(
            cache_dir=self.cache_dir,
            channel=self.channel,
            docker_version=self.docker_version,
            docker_fallback_versions=self.docker_fallback_versions,
            docker_mirrors=self.docker_mirrors,
            compose_version=self.compose_version,
            compose_fallback_version=self.compose_fallback_version,
            compose_min_size=self.compose_min_size,
            sqlite_version=self.sqlite_version,
            sqlite_url_template=self.sqlite_url_template,
            sqlite_repo=self.sqlite_repo,
            sqlite_min_size=self.sqlite_min_size,
        )


def load_build_config(path: Optional[str], *, required: bool = False) -> BuildConfig:
    """Load YAML build config; a missing optional file yields defaults."""

    if not path:
        return BuildConfig(raw={})

    p = Path(path)
    if not p.exists():
        if required:
            raise FileNotFoundError(path)
        return BuildConfig(raw={})

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("build config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the build config") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return BuildConfig(raw=raw)

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


class UnsupportedArchitecture(ValueError):
    pass


@dataclass(frozen=True)
class ArchitectureProfile:
    """Naming conventions for one target CPU architecture.

    Each upstream project spells architectures differently; the canonical
    tag is what we use in bundle and cache file names.
    """

    tag: str
    app_arch: str
    docker_arch: str
    compose_arch: str
    sqlite_arch: Optional[str] = None


PROFILES: Dict[str, ArchitectureProfile] = {
    p.tag: p
    for p in [
        ArchitectureProfile("amd64", "amd64", "x86_64", "x86_64", "amd64"),
        ArchitectureProfile("arm64", "arm64", "aarch64", "aarch64", "arm64"),
        ArchitectureProfile("armv7", "armv7", "armhf", "armv7", "armv7"),
        ArchitectureProfile("ppc64le", "ppc64le", "ppc64le", "ppc64le", "ppc64le"),
        ArchitectureProfile("s390x", "s390x", "s390x", "s390x", "s390x"),
        ArchitectureProfile("riscv64", "riscv64", "riscv64", "riscv64", "riscv64"),
        ArchitectureProfile("loong64", "loong64", "loongarch64", "loongarch64", None),
    ]
}

_ALIASES = {
    "loongarch64": "loong64",
}


def normalize_arch(tag: str) -> str:
    t = tag.strip().lower()
    return _ALIASES.get(t, t)


def get_profile(tag: str) -> ArchitectureProfile:
    key = normalize_arch(tag)
    try:
        return PROFILES[key]
    except KeyError:
        raise UnsupportedArchitecture(f"Unsupported arch: {tag}") from None

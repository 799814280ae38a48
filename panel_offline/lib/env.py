from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

BASE_DIR_OVERRIDE_ENV = "PANEL_BASE_DIR_OVERRIDE"


@dataclass(frozen=True)
class HostPaths:
    bin_dir: str = "/usr/local/bin"
    systemd_unit_dir: str = "/etc/systemd/system"
    init_dir: str = "/etc/init.d"


HOST_PATHS = HostPaths()

PANEL_BINARIES = ("1panel-core", "1panel-agent", "1pctl")
PANEL_SERVICES = ("1panel-core", "1panel-agent")


def host_paths(state: Dict[str, Any]) -> HostPaths:
    return HostPaths(**(state.get("paths") or {}))

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from ..lib.env import PANEL_SERVICES, HostPaths, host_paths

logger = logging.getLogger(__name__)


_UNIT_SUFFIX = {
    "systemd": ".service",
    "openrc": ".openrc",
    "sysvinit": ".init",
}


def _unit_destination(mgr: str, paths: HostPaths, name: str) -> Path:
    if mgr == "systemd":
        return Path(paths.systemd_unit_dir) / f"{name}.service"
    return Path(paths.init_dir) / name


def find_unit_source(bundle: Path, mgr: str, name: str) -> Optional[Path]:
    """Prefer initscript/<unit>, then a top-level copy of the same file."""

    filename = name + _UNIT_SUFFIX[mgr]
    for candidate in (bundle / "initscript" / filename, bundle / filename):
        if candidate.is_file():
            return candidate
    return None


class InstallUnitsStep:
    step_id = "70_install_units"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        bundle = Path(state["bundle_dir"])
        mgr = state["service_manager"]
        paths = host_paths(state)

        logger.info("Updating service units...")
        for name in PANEL_SERVICES:
            src = find_unit_source(bundle, mgr, name)
            if src is None:
                logger.warning("Service unit not found for %s (%s)", name, mgr)
                continue
            if src.parent == bundle:
                logger.info("Using fallback service file: %s", src)

            dst = _unit_destination(mgr, paths, name)
            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(src, dst)
                if mgr != "systemd":
                    dst.chmod(0o755)
            except OSError as e:
                logger.warning("Could not install %s: %s", dst, e)
        return state

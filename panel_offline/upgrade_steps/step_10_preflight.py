from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

from ..lib.conf_file import read_conf
from ..lib.env import BASE_DIR_OVERRIDE_ENV, host_paths
from ..lib.services import detect_service_manager

logger = logging.getLogger(__name__)


class UpgradeError(RuntimeError):
    pass


REQUIRED_FILES = ("1panel-core", "1panel-agent", "1pctl", "GeoIP.mmdb")
REQUIRED_DIRS = ("lang",)

# state["panel"] field -> key in 1pctl
PANEL_CONF_KEYS = {
    "base_dir": "BASE_DIR",
    "port": "ORIGINAL_PORT",
    "username": "ORIGINAL_USERNAME",
    "password": "ORIGINAL_PASSWORD",
    "entrance": "ORIGINAL_ENTRANCE",
    "language": "LANGUAGE",
    "change_user_info": "CHANGE_USER_INFO",
}


def _is_root() -> bool:
    return os.geteuid() == 0


class PreflightStep:
    step_id = "10_preflight"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        bundle = Path(state["bundle_dir"])
        paths = host_paths(state)

        if not _is_root():
            raise UpgradeError("Please run as root.")

        installed = Path(paths.bin_dir) / "1pctl"
        if not installed.is_file():
            raise UpgradeError(f"{installed} not found, please run install first.")

        missing = [f for f in REQUIRED_FILES if not (bundle / f).is_file()]
        missing += [f"{d}/" for d in REQUIRED_DIRS if not (bundle / d).is_dir()]
        for m in missing:
            logger.error("Required file missing: %s", m)
        if not (bundle / "initscript").is_dir():
            logger.warning("Directory missing: initscript/ (optional for older versions)")
        if missing:
            raise UpgradeError(f"Please ensure all required files exist in {bundle}")

        # Read the existing config before anything changes.
        panel = {field: read_conf(installed, key) for field, key in PANEL_CONF_KEYS.items()}
        override = os.environ.get(BASE_DIR_OVERRIDE_ENV)
        if override:
            panel["base_dir"] = override
        if not panel["base_dir"] or not Path(panel["base_dir"]).is_dir():
            raise UpgradeError(
                "Cannot detect install directory (BASE_DIR). "
                f"Set {BASE_DIR_OVERRIDE_ENV} to the correct path and re-run."
            )

        new_version = read_conf(bundle / "1pctl", "ORIGINAL_VERSION")
        if not new_version:
            raise UpgradeError("Cannot determine new version from package 1pctl")
        panel["new_version"] = new_version

        state["panel"] = panel
        state["service_manager"] = state.get("service_manager") or detect_service_manager()

        logger.info("Upgrade to %s", new_version)
        logger.info(
            "Detected config: dir=%s port=%s user=%s entrance=%s lang=%s (service manager: %s)",
            panel["base_dir"],
            panel["port"],
            panel["username"],
            panel["entrance"],
            panel["language"],
            state["service_manager"],
        )
        return state

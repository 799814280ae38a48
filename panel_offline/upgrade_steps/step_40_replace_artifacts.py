from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict

from ..lib.assets import copy_tree
from ..lib.env import PANEL_BINARIES, PANEL_SERVICES, host_paths
from ..lib.services import start_services
from .step_10_preflight import UpgradeError
from .step_20_backup import restore_backup

logger = logging.getLogger(__name__)


def _install_binary(src: Path, dst: Path) -> None:
    shutil.copy2(src, dst)


def _rollback(state: Dict[str, Any]) -> None:
    try:
        restore_backup(state)
    except OSError as e:
        logger.error("Rollback incomplete: %s", e)
    finally:
        try:
            start_services(state["service_manager"], PANEL_SERVICES)
        except RuntimeError as e:
            logger.error("Services failed to start after rollback: %s", e)


class ReplaceArtifactsStep:
    step_id = "40_replace_artifacts"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        bundle = Path(state["bundle_dir"])
        bin_dir = Path(host_paths(state).bin_dir)
        geo_dir = Path(state["panel"]["base_dir"]) / "1panel" / "geo"

        logger.info("Updating binaries and resources...")
        try:
            for name in PANEL_BINARIES:
                _install_binary(bundle / name, bin_dir / name)
            copy_tree(str(bundle / "lang"), str(bin_dir / "lang"))
            for name in PANEL_BINARIES:
                (bin_dir / name).chmod(0o700)
            geo_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(bundle / "GeoIP.mmdb", geo_dir / "GeoIP.mmdb")
        except OSError as e:
            logger.error("Failed to replace panel files: %s", e)
            _rollback(state)
            raise UpgradeError("Upgrade failed while replacing panel files") from e
        return state

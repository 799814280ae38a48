from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Any, Dict

from ..lib.assets import copy_tree
from ..lib.env import PANEL_BINARIES, host_paths

logger = logging.getLogger(__name__)


class BackupStep:
    step_id = "20_backup"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        bin_dir = Path(host_paths(state).bin_dir)
        backup_dir = Path(state["bundle_dir"]) / f"backup_{time.strftime('%Y%m%d_%H%M%S')}"

        logger.info("Creating backup at %s...", backup_dir)
        backup_dir.mkdir(parents=True, exist_ok=True)
        saved = []
        for name in PANEL_BINARIES:
            src = bin_dir / name
            if src.is_file():
                shutil.copy2(src, backup_dir / name)
                saved.append(name)
        if (bin_dir / "lang").is_dir():
            copy_tree(str(bin_dir / "lang"), str(backup_dir / "lang"))
            saved.append("lang/")

        state["backup_dir"] = str(backup_dir)
        state["backup_files"] = saved
        return state


def restore_backup(state: Dict[str, Any]) -> bool:
    """Put the backed-up binaries and language files back in place."""

    logger.info("Rolling back to previous version...")
    backup = state.get("backup_dir")
    if not backup or not Path(backup).is_dir():
        logger.warning("No backup found, cannot rollback.")
        return False

    backup_dir = Path(backup)
    bin_dir = Path(host_paths(state).bin_dir)
    for name in PANEL_BINARIES:
        if (backup_dir / name).is_file():
            shutil.copy2(backup_dir / name, bin_dir / name)
    if (backup_dir / "lang").is_dir():
        copy_tree(str(backup_dir / "lang"), str(bin_dir / "lang"))
    logger.info("Rollback completed.")
    return True

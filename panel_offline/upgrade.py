from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .lib.env import HOST_PATHS, HostPaths
from .logging_utils import configure_logging
from .pipeline import run_pipeline
from .upgrade_steps import (
    BackupStep,
    InstallUnitsStep,
    MigrateVersionStep,
    PreflightStep,
    ReplaceArtifactsStep,
    RewriteConfigStep,
    StartServicesStep,
    StopServicesStep,
    UpgradeError,
    VerifyStep,
)

logger = logging.getLogger(__name__)


UPGRADE_LOG_NAME = "upgrade.log"


def build_steps():
    return [
        PreflightStep(),
        BackupStep(),
        StopServicesStep(),
        ReplaceArtifactsStep(),
        RewriteConfigStep(),
        MigrateVersionStep(),
        InstallUnitsStep(),
        StartServicesStep(),
        VerifyStep(),
    ]


def run(
    *,
    bundle_dir: Path,
    paths: HostPaths = HOST_PATHS,
    log_path: Optional[str] = None,
    service_manager: Optional[str] = None,
    settle_seconds: float = 2,
) -> Dict[str, Any]:
    """Upgrade an existing 1Panel install from an unpacked offline bundle."""

    configure_logging(log_path=log_path or str(bundle_dir / UPGRADE_LOG_NAME))

    state: Dict[str, Any] = {
        "bundle_dir": str(bundle_dir),
        "paths": dataclasses.asdict(paths),
        "service_manager": service_manager,
        "settle_seconds": settle_seconds,
        "execution": {},
    }

    try:
        return run_pipeline(state=state, steps=build_steps()).state
    except Exception as e:
        logger.exception("Upgrade failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": (state.get("execution") or {}).get("current_step"),
                "error": str(e),
            }
        )
        raise


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="panel-offline-upgrade",
        description=(
            "Upgrade 1Panel in place from the offline bundle in the current directory. "
            "Set PANEL_BASE_DIR_OVERRIDE if BASE_DIR cannot be read from 1pctl."
        ),
    )
    p.parse_args(argv)

    try:
        run(bundle_dir=Path.cwd())
    except UpgradeError:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

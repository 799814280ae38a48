from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from ..lib.command import run_cmd

logger = logging.getLogger(__name__)


PANEL_DBS = ("core.db", "agent.db")


def _update_in_process(db: Path, version: str) -> None:
    conn = sqlite3.connect(str(db))
    try:
        with conn:
            conn.execute("UPDATE settings SET value=? WHERE key='SystemVersion'", (version,))
    finally:
        conn.close()


def _sqlite_cli(bundle: Path) -> Optional[str]:
    bundled = bundle / "sqlite3"
    if bundled.is_file() and os.access(bundled, os.X_OK):
        return str(bundled)
    return shutil.which("sqlite3")


def _update_with_cli(cli: str, db: Path, version: str) -> None:
    quoted = version.replace("'", "''")
    run_cmd([cli, str(db), f"UPDATE settings SET value='{quoted}' WHERE key='SystemVersion';"])


class MigrateVersionStep:
    """Record the new SystemVersion in the panel databases.

    Not essential for the services to come up, so every failure here is
    downgraded to a warning.
    """

    step_id = "60_migrate_version"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        panel = state["panel"]
        version = panel["new_version"]
        db_dir = Path(panel["base_dir"]) / "1panel" / "db"
        outcome = state.setdefault("decisions", {}).setdefault("system_version", {})

        for name in PANEL_DBS:
            db = db_dir / name
            if not db.is_file():
                continue
            try:
                _update_in_process(db, version)
                outcome[name] = "updated"
                continue
            except sqlite3.Error as e:
                logger.warning("DB update error for %s: %s", db, e)

            cli = _sqlite_cli(Path(state["bundle_dir"]))
            if not cli:
                logger.warning("sqlite3 not found; skip updating SystemVersion in %s", db)
                outcome[name] = "skipped"
                continue
            try:
                _update_with_cli(cli, db, version)
                outcome[name] = "updated-cli"
            except RuntimeError as e:
                logger.warning("sqlite3 could not update %s: %s", db, e)
                outcome[name] = "skipped"

        return state

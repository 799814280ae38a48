from __future__ import annotations

import logging
import time
from typing import Any, Dict

from ..lib.command import run_cmd
from ..lib.services import is_active

logger = logging.getLogger(__name__)


def _first_ip_from_addr_show() -> str:
    try:
        r = run_cmd(["ip", "-4", "addr", "show"], check=False)
    except RuntimeError:
        return ""
    for line in r.stdout.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == "inet" and not fields[1].startswith("127."):
            return fields[1].split("/", 1)[0]
    return ""


def get_host_ip() -> str:
    try:
        r = run_cmd(["hostname", "-I"], check=False)
        parts = r.stdout.split()
    except RuntimeError:
        parts = []
    return (parts[0] if parts else "") or _first_ip_from_addr_show() or "127.0.0.1"


class VerifyStep:
    step_id = "90_verify"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        time.sleep(float(state.get("settle_seconds", 2)))

        active = is_active(state["service_manager"], "1panel-core")
        if active is False:
            logger.warning("1panel-core service may not be running properly")
        elif active is None:
            logger.info("Service liveness not checked on %s", state["service_manager"])

        panel = state["panel"]
        logger.info("Upgrade finished successfully.")
        logger.info("Panel: http://%s:%s/%s", get_host_ip(), panel["port"], panel["entrance"])
        logger.info("User: %s", panel["username"])
        logger.info("Backup saved at: %s", state.get("backup_dir"))
        return state

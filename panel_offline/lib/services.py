from __future__ import annotations

import logging
import shutil
from typing import Literal, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)


ServiceManager = Literal["systemd", "openrc", "sysvinit"]


def detect_service_manager() -> ServiceManager:
    if shutil.which("systemctl"):
        return "systemd"
    if shutil.which("rc-service"):
        return "openrc"
    return "sysvinit"


def _service_argv(mgr: ServiceManager, action: str, name: str) -> list[str]:
    if mgr == "systemd":
        return ["systemctl", action, f"{name}.service"]
    if mgr == "openrc":
        return ["rc-service", name, action]
    return ["service", name, action]


def stop_services(mgr: ServiceManager, names: Sequence[str]) -> None:
    for name in names:
        r = run_cmd(_service_argv(mgr, "stop", name), check=False)
        if r.returncode != 0:
            logger.info("Stopping %s returned %s (ignored)", name, r.returncode)


def start_services(mgr: ServiceManager, names: Sequence[str]) -> None:
    """Start (and on systemd, enable) services; raises on the first failure."""

    if mgr == "systemd":
        run_cmd(["systemctl", "daemon-reload"])
        for name in names:
            run_cmd(["systemctl", "enable", f"{name}.service"], check=False)
    for name in names:
        run_cmd(_service_argv(mgr, "start", name))


def is_active(mgr: ServiceManager, name: str) -> bool | None:
    """Liveness of a service, or None when it can't be determined."""

    if mgr != "systemd":
        return None
    try:
        r = run_cmd(["systemctl", "is-active", "--quiet", f"{name}.service"], check=False)
    except RuntimeError:
        return None
    return r.returncode == 0

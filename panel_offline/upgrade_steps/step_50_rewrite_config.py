from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..lib.conf_file import update_conf
from ..lib.env import host_paths
from .step_10_preflight import PANEL_CONF_KEYS

logger = logging.getLogger(__name__)


class RewriteConfigStep:
    """Carry the previous install's settings into the freshly copied 1pctl."""

    step_id = "50_rewrite_config"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        panel = state["panel"]
        conf = Path(host_paths(state).bin_dir) / "1pctl"

        values: Dict[str, Optional[str]] = {}
        for field, key in PANEL_CONF_KEYS.items():
            # Nothing recorded before means nothing to preserve.
            values[key] = panel.get(field) or None

        logger.info("Restoring configuration...")
        update_conf(conf, values)
        return state

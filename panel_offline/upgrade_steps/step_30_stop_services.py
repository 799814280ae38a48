from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.env import PANEL_SERVICES
from ..lib.services import stop_services

logger = logging.getLogger(__name__)


class StopServicesStep:
    step_id = "30_stop_services"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Stopping 1Panel services...")
        stop_services(state["service_manager"], PANEL_SERVICES)
        return state

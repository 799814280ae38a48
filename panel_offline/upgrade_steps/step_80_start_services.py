from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.env import PANEL_SERVICES
from ..lib.services import start_services

logger = logging.getLogger(__name__)


class StartServicesStep:
    step_id = "80_start_services"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Starting 1Panel services...")
        try:
            start_services(state["service_manager"], PANEL_SERVICES)
        except RuntimeError as e:
            logger.warning("Service start may have issues, check status manually: %s", e)
        return state

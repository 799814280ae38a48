from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOG_NAME = "panel-offline.log"


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure root logging to a file and, optionally, the console.

    If `log_path` cannot be opened (read-only bundle directory, missing
    permissions) the file handler falls back to the working directory.
    Calling this again is a no-op.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    if getattr(logger, "_panel_offline_configured", False):
        return getattr(logger, "_panel_offline_log_path", log_path)

    chosen_path = log_path
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler: Optional[logging.Handler] = None
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
    except OSError:
        chosen_path = str(Path.cwd() / DEFAULT_LOG_NAME)
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_panel_offline_configured", True)
    setattr(logger, "_panel_offline_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path

"""
Logging setup for hosts embedding the engine.
"""

import logging

from canvasforge.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure root logging from settings.

    Debug mode forces DEBUG for the engine's own loggers; noisy third-party
    loggers stay at WARNING.
    """
    settings = settings or get_settings()

    logging.basicConfig(level=getattr(logging, settings.log_level), format=LOG_FORMAT)

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    if settings.debug:
        logging.getLogger("canvasforge").setLevel(logging.DEBUG)

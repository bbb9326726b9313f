import logging
from typing import Optional

from .config import settings


def configure_logging(level_name: Optional[str] = None) -> None:
    """Configure root logging once for the API process or a CLI invocation."""
    log_level_name = level_name or settings.log_level
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logging.getLogger("shiprates").setLevel(log_level)
    logging.getLogger(__name__).info("Logging configured, level=%s", log_level_name)

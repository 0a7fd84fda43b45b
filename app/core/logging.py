import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Root logging setup; level comes from LOG_LEVEL."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    # SQL echo stays off unless explicitly debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

# Process-wide logging setup, called once from the app factory.
import logging
import os
import sys


def setup_logging() -> None:
    """
    Configure the root logger from LOG_LEVEL (default INFO).

    Service loggers live under the "estatedesk." namespace and attach context
    through `extra=`; library chatter is capped at WARNING.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=level,
    )

    # Suppress noise from common libraries
    for noisy_logger in ("urllib3", "requests", "cloudinary", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("estatedesk").setLevel(level)

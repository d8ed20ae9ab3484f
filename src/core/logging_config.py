"""Process-wide logging setup."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; repeated calls only adjust the level.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_garage_booking", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._garage_booking = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # SQL echo is controlled by settings.debug, not by the root level.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

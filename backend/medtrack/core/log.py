"""Module: log."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the ``medtrack`` logger tree.

    Safe to call more than once (app reloads, test clients); the handler is
    only installed the first time.
    """
    logger = logging.getLogger("medtrack")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_medtrack", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._medtrack = True
        logger.addHandler(handler)

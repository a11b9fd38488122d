from __future__ import annotations

import logging
import sys

_NOISY_LOGGERS = ("pymongo", "mongomock", "werkzeug")


def setup_logging(level: str = "INFO") -> None:
    level = str(level or "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

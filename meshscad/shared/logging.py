from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(default_level: str = "INFO") -> None:
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # trimesh / pyrender are chatty at INFO
    for noisy in ("trimesh", "pyrender", "PIL"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

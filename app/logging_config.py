# app/logging_config.py
import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from app.config import get_settings

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: Optional[str] = None, use_json: Optional[bool] = None) -> None:
    """
    Install a single stdout handler on the root logger.

    Safe to call more than once (the lifespan and CLI scripts both call it);
    existing root handlers are replaced rather than stacked.
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if use_json is None else use_json

    if use_json:
        formatter: logging.Formatter = JsonFormatter(
            JSON_FORMAT,
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

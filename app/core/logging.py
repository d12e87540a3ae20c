from __future__ import annotations

import logging
import os
from logging.config import dictConfig
from typing import Optional

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Libraries that log far too much at INFO.
_NOISY_LOGGERS = ("pymongo", "motor", "httpcore", "httpx")


def _norm_level(v: Optional[str], default: str) -> str:
    s = (v or default).upper().strip()
    return s if s in _LEVELS else default


def init_logging(
    *,
    root_level: str = "INFO",
    app_level: Optional[str] = None,
    third_party_level: str = "WARNING",
) -> None:
    """
    Configure logging once, at import of app.main.

    - root logger controls generic libs
    - "app" logger controls the valuation engine itself (matcher, pricing,
      lifecycle, ledger); DEBUG there shows per-row match decisions
    - Mongo / HTTP client libs are forced to WARNING

    Env overrides:
      LOG_ROOT_LEVEL=INFO|DEBUG|...
      LOG_APP_LEVEL=INFO|DEBUG|...
      LOG_THIRD_PARTY_LEVEL=WARNING|INFO|...
    """
    root_lvl = _norm_level(os.getenv("LOG_ROOT_LEVEL"), root_level)
    app_lvl = _norm_level(os.getenv("LOG_APP_LEVEL"), app_level or root_lvl)
    third_lvl = _norm_level(os.getenv("LOG_THIRD_PARTY_LEVEL"), third_party_level)

    loggers = {
        "app": {"level": app_lvl, "handlers": ["console"], "propagate": False},
        "uvicorn": {"level": root_lvl, "handlers": ["console"], "propagate": False},
        "uvicorn.error": {"level": root_lvl, "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": root_lvl, "handlers": ["console"], "propagate": False},
    }
    for name in _NOISY_LOGGERS:
        loggers[name] = {"level": third_lvl, "handlers": ["console"], "propagate": False}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "standard",
                }
            },
            "root": {"level": root_lvl, "handlers": ["console"]},
            "loggers": loggers,
        }
    )

    logging.getLogger(__name__).info(
        "[logging] configured root=%s app=%s third_party=%s",
        root_lvl,
        app_lvl,
        third_lvl,
    )
